import json

import pytest

from ledgerboard.domain.notifications.models import Subscription
from ledgerboard.domain.notifications.schemas import WebhookEventSchema
from ledgerboard.domain.notifications.service import NotificationService
from ledgerboard.domain.notifications.store import DUE_Z, EVENTS_LIST, SubscriptionStore, record_key
from ledgerboard.settings import settings

NOW = 1_700_000_000


def _event(name, *, fid=7, app_fid=9, token="tok-7", url="https://push.example/notify"):
	body = {"event": name}
	if token is not None:
		body["notificationDetails"] = {"token": token, "url": url}
	return WebhookEventSchema.model_validate({"fid": fid, "appFid": app_fid, "event": body})


@pytest.mark.asyncio
async def test_enable_event_creates_subscription_one_cadence_out(fake_redis, fake_gateway):
	service = NotificationService(fake_gateway)

	ack = await service.handle_webhook_event(_event("miniapp_added"), now_seconds=NOW)

	assert ack.action == "subscribed"
	record = await service.store.get(7, 9)
	assert record.token == "tok-7"
	assert record.cadence_hours == 12
	assert record.next_send_at == NOW + 12 * 3600
	assert await fake_redis.zscore(DUE_Z, "7:9") == NOW + 12 * 3600


@pytest.mark.asyncio
async def test_disable_event_removes_record_and_index(fake_redis, fake_gateway):
	service = NotificationService(fake_gateway)
	await service.handle_webhook_event(_event("notifications_enabled"), now_seconds=NOW)

	ack = await service.handle_webhook_event(_event("notifications_disabled", token=None), now_seconds=NOW + 1)

	assert ack.action == "unsubscribed"
	assert await fake_redis.get(record_key(7, 9)) is None
	assert await fake_redis.zscore(DUE_Z, "7:9") is None


@pytest.mark.asyncio
async def test_unknown_event_is_acknowledged_and_ignored(fake_redis, fake_gateway):
	service = NotificationService(fake_gateway)

	ack = await service.handle_webhook_event(_event("frame_something_new", token=None), now_seconds=NOW)

	assert ack.ok is True
	assert ack.action == "ignored"
	assert await fake_redis.zcard(DUE_Z) == 0


@pytest.mark.asyncio
async def test_event_log_is_bounded_and_token_free(fake_redis, fake_gateway):
	settings.notif_event_log_size = 3
	service = NotificationService(fake_gateway)

	for offset in range(5):
		await service.handle_webhook_event(_event("miniapp_added", token="very-secret"), now_seconds=NOW + offset)

	raw = await fake_redis.lrange(EVENTS_LIST, 0, -1)
	assert len(raw) == 3
	assert all("very-secret" not in item for item in raw)
	events = await service.recent_events(limit=10)
	assert [event["ts"] for event in events["events"]] == [NOW + 4, NOW + 3, NOW + 2]


@pytest.mark.asyncio
async def test_status_reports_registered_and_soonest(fake_redis, fake_gateway):
	service = NotificationService(fake_gateway)
	await service.handle_webhook_event(_event("miniapp_added", fid=1), now_seconds=NOW)
	await service.handle_webhook_event(_event("miniapp_added", fid=2), now_seconds=NOW - 100)

	status = await service.status(now_seconds=NOW)

	assert status.registered == 2
	assert status.due_now == 0
	assert status.soonest.member == "2:9"
	assert status.soonest.in_seconds == 12 * 3600 - 100


@pytest.mark.asyncio
async def test_reschedule_all_moves_cadence(fake_redis, fake_gateway):
	service = NotificationService(fake_gateway)
	await service.handle_webhook_event(_event("miniapp_added", fid=1), now_seconds=NOW)
	await service.handle_webhook_event(_event("miniapp_added", fid=2), now_seconds=NOW)
	await fake_redis.zadd(DUE_Z, {"3:9": NOW})

	result = await service.reschedule_all(1, now_seconds=NOW + 50)

	assert (result.updated, result.missing, result.total) == (2, 1, 3)
	record = await service.store.get(1, 9)
	assert record.cadence_hours == 1
	assert await fake_redis.zscore(DUE_Z, "1:9") == NOW + 50 + 3600


@pytest.mark.asyncio
async def test_reschedule_rejects_unsupported_cadence(fake_gateway):
	with pytest.raises(ValueError):
		await NotificationService(fake_gateway).reschedule_all(24)


@pytest.mark.asyncio
async def test_send_test_reports_token_classification(fake_redis, fake_gateway):
	service = NotificationService(fake_gateway)
	await service.handle_webhook_event(_event("miniapp_added"), now_seconds=NOW)
	fake_gateway.mode = "rate_limited"

	member = await service.resolve_member()
	result = await service.send_test(member)

	assert member == "7:9"
	assert result.parsed["tokenWasRateLimited"] is True
	assert result.parsed["tokenWasSuccessful"] is False
	# Schedule is left alone.
	assert await fake_redis.zscore(DUE_Z, "7:9") == NOW + 12 * 3600


@pytest.mark.asyncio
async def test_send_test_unknown_member(fake_gateway):
	assert await NotificationService(fake_gateway).send_test("99:1") is None


def test_subscription_normalised_on_read():
	record = Subscription.from_mapping(
		{"fid": 1, "appFid": 2, "url": "https://x", "token": "t", "cadenceHours": 24, "nextSendAt": 10}
	)
	assert record.cadence_hours == settings.notif_cadence_hours
	assert record.invalid_streak == 0
	assert record.last_result is None


@pytest.mark.parametrize(
	"payload",
	[
		None,
		[],
		{"fid": 1, "appFid": 2, "url": "https://x", "nextSendAt": 10},
		{"fid": "x", "appFid": 2, "url": "https://x", "token": "t", "nextSendAt": 10},
		{"fid": 1, "appFid": 2, "url": "https://x", "token": "t"},
	],
)
def test_malformed_subscription_reads_as_absent(payload):
	assert Subscription.from_mapping(payload) is None


@pytest.mark.asyncio
async def test_upsert_keeps_history_fields(fake_redis):
	store = SubscriptionStore()
	first = await store.upsert(fid=1, app_fid=2, url="https://a", token="t1", now_seconds=NOW)
	second = await store.upsert(fid=1, app_fid=2, url="https://b", token="t2", now_seconds=NOW + 60)

	assert second.created_at == first.created_at == NOW
	stored = json.loads(await fake_redis.get(record_key(1, 2)))
	assert stored["token"] == "t2"
	assert stored["url"] == "https://b"
