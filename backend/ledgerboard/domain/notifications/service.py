"""Subscription lifecycle: host webhook events plus admin tooling."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from ledgerboard.domain.notifications import dispatcher as dispatch
from ledgerboard.domain.notifications.dispatcher import NotificationDispatcher
from ledgerboard.domain.notifications.models import DispatchResult, member_key, parse_member
from ledgerboard.domain.notifications.schemas import (
	NotificationStatusSchema,
	RescheduleResultSchema,
	SendTestResultSchema,
	SoonestDueSchema,
	WebhookAckSchema,
	WebhookEventSchema,
)
from ledgerboard.domain.notifications.store import SubscriptionStore
from ledgerboard.infra.push_gateway import PushGateway, PushRequest
from ledgerboard.obs import metrics as obs_metrics
from ledgerboard.settings import ALLOWED_CADENCE_HOURS, settings

_LOG = logging.getLogger(__name__)

ENABLE_EVENTS = frozenset({"miniapp_added", "notifications_enabled"})
DISABLE_EVENTS = frozenset({"miniapp_removed", "notifications_disabled"})


class NotificationService:
	def __init__(self, gateway: Optional[PushGateway] = None, *, store: Optional[SubscriptionStore] = None) -> None:
		self.store = store or SubscriptionStore()
		self.dispatcher = NotificationDispatcher(gateway, store=self.store)

	async def dispatch_due(self, *, now_seconds: Optional[int] = None, batch_limit: Optional[int] = None) -> DispatchResult:
		return await self.dispatcher.dispatch_due(now_seconds, batch_limit)

	async def handle_webhook_event(
		self, payload: WebhookEventSchema, *, now_seconds: Optional[int] = None
	) -> WebhookAckSchema:
		"""Store-and-ACK. The host waits on this before activating tokens, so a store
		failure is logged and the event still acknowledged.
		"""
		now_seconds = int(now_seconds if now_seconds is not None else time.time())
		fid, app_fid = payload.fid, payload.app_fid
		name = payload.event.event
		breadcrumb = {"ts": now_seconds, "event": name, "fid": fid, "appFid": app_fid}
		try:
			await self.store.append_event(breadcrumb)
		except RedisError as exc:
			_LOG.warning("notif.event_log_failed", extra={"reason": str(exc), "event": name})

		action = "ignored"
		try:
			if name in ENABLE_EVENTS:
				details = payload.event.notification_details
				if details is not None:
					await self.store.upsert(fid=fid, app_fid=app_fid, url=str(details.url), token=details.token, now_seconds=now_seconds)
					action = "subscribed"
			elif name in DISABLE_EVENTS:
				await self.store.delete(fid, app_fid)
				action = "unsubscribed"
		except RedisError as exc:
			_LOG.error("notif.webhook_store_failed", extra={"reason": str(exc), "event": name, "fid": fid})
			action = "store_failed"
		if action in ("subscribed", "unsubscribed"):
			obs_metrics.inc_subscription_change(action)
		_LOG.info("notif.webhook_event", extra={"event": name, "fid": fid, "app_fid": app_fid, "action": action})
		return WebhookAckSchema(action=action)

	async def status(self, *, now_seconds: Optional[int] = None) -> NotificationStatusSchema:
		now_seconds = int(now_seconds if now_seconds is not None else time.time())
		soonest = await self.store.soonest()
		return NotificationStatusSchema(
			now=now_seconds,
			registered=await self.store.registered_count(),
			due_now=await self.store.due_count(now_seconds),
			cadence_hours=settings.notif_cadence_hours,
			soonest=(
				SoonestDueSchema(member=soonest[0], next_send_at=soonest[1], in_seconds=soonest[1] - now_seconds)
				if soonest
				else None
			),
		)

	async def recent_events(self, *, limit: int = 50) -> Dict[str, Any]:
		events = await self.store.recent_events(limit)
		return {"ok": True, "count": len(events), "events": events}

	async def reschedule_all(
		self, hours: int, *, member: Optional[str] = None, now_seconds: Optional[int] = None
	) -> RescheduleResultSchema:
		"""Move every (or one) subscription onto a new cadence, next send one cadence out."""
		if hours not in ALLOWED_CADENCE_HOURS:
			raise ValueError("hours must be 1, 6, or 12")
		now_seconds = int(now_seconds if now_seconds is not None else time.time())
		members = [member] if member else await self.store.all_members()
		updated = 0
		missing = 0
		for item in members:
			ids = parse_member(item)
			if ids is None:
				missing += 1
				continue
			subscription = await self.store.get(*ids)
			if subscription is None:
				missing += 1
				continue
			subscription.cadence_hours = hours
			subscription.next_send_at = now_seconds + hours * 3600
			subscription.updated_at = now_seconds
			if await self.store.save(subscription, require_existing=True):
				updated += 1
			else:
				missing += 1
		_LOG.info("notif.rescheduled", extra={"hours": hours, "updated": updated, "missing": missing})
		return RescheduleResultSchema(updated=updated, missing=missing, total=len(members), hours=hours)

	async def resolve_member(self, *, fid: Optional[int] = None, app_fid: Optional[int] = None) -> Optional[str]:
		if fid is not None and app_fid is not None:
			return member_key(fid, app_fid)
		soonest = await self.store.soonest()
		return soonest[0] if soonest else None

	async def send_test(self, member: str) -> Optional[SendTestResultSchema]:
		"""One-off push to a single subscriber; does not touch its schedule."""
		ids = parse_member(member)
		subscription = await self.store.get(*ids) if ids else None
		if subscription is None:
			return None
		request = PushRequest(
			notification_id=str(uuid.uuid4()),
			title=settings.notif_title,
			body="Test notification (admin send-test)",
			target_url=dispatch.target_url(),
			tokens=[subscription.token],
		)
		response = await self.dispatcher.gateway.send(subscription.url, request)
		token = subscription.token
		parsed = {
			**dispatch.summarise_response(response),
			"tokenWasSuccessful": token in response.successful_tokens,
			"tokenWasInvalid": token in response.invalid_tokens,
			"tokenWasRateLimited": token in response.rate_limited_tokens,
		}
		return SendTestResultSchema(
			ok=response.ok,
			member=member,
			status=response.status_code,
			parsed=parsed,
			raw=response.payload,
		)


__all__ = ["DISABLE_EVENTS", "ENABLE_EVENTS", "NotificationService"]
