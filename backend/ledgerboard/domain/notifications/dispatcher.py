"""Delivers due reminders and applies the per-outcome retry/disable policy."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any, Callable, Optional

from redis.exceptions import RedisError

from ledgerboard.domain.notifications.models import DeliveryOutcome, DispatchResult, Subscription, parse_member
from ledgerboard.domain.notifications.store import SubscriptionStore
from ledgerboard.errors import DataAnomaly, GatewayUnavailable
from ledgerboard.infra import http
from ledgerboard.infra.push_gateway import GatewayResponse, HttpPushGateway, PushGateway, PushRequest
from ledgerboard.obs import metrics as obs_metrics
from ledgerboard.settings import settings

_LOG = logging.getLogger(__name__)


def default_gateway() -> PushGateway:
	return HttpPushGateway(http.get_client(), timeout=settings.push_timeout_seconds)


def target_url() -> str:
	return settings.app_url.rstrip("/")


def notification_id(subscription: Subscription, now_seconds: int) -> str:
	"""Stable for every attempt inside one cadence slot, so the gateway dedupes retries."""
	slot = now_seconds // subscription.cadence_seconds
	return f"reminder-{subscription.cadence_hours}h-{slot}-{subscription.fid}"


def classify(token: str, response: GatewayResponse) -> tuple[DeliveryOutcome, Optional[str]]:
	"""Map a gateway answer onto exactly one outcome for `token`."""
	if not response.ok:
		return DeliveryOutcome.ERROR, f"http_{response.status_code}"
	if token in response.invalid_tokens:
		return DeliveryOutcome.INVALID, None
	if token in response.rate_limited_tokens:
		return DeliveryOutcome.RATE_LIMITED, None
	if token in response.successful_tokens:
		return DeliveryOutcome.SENT, None
	# 2xx that does not mention our token is an anomaly, never a silent success.
	return DeliveryOutcome.ERROR, DataAnomaly.reason


def summarise_response(response: GatewayResponse) -> dict[str, Any]:
	"""Token-free digest stored on the record for observability."""
	return {
		"status": response.status_code,
		"recognised": response.recognised,
		"successful": len(response.successful_tokens),
		"invalid": len(response.invalid_tokens),
		"rateLimited": len(response.rate_limited_tokens),
	}


class NotificationDispatcher:
	"""Pulls due subscriptions and sends one reminder each.

	Failures are scoped to a single subscription: a gateway error reschedules that
	subscriber and the loop moves on. Nothing is held across the gateway call; the
	bookkeeping write re-checks the record so a concurrent opt-out wins.
	"""

	def __init__(
		self,
		gateway: Optional[PushGateway] = None,
		*,
		store: Optional[SubscriptionStore] = None,
		gateway_factory: Callable[[], PushGateway] = default_gateway,
	) -> None:
		self._gateway = gateway
		self._gateway_factory = gateway_factory
		self.store = store or SubscriptionStore()

	@property
	def gateway(self) -> PushGateway:
		if self._gateway is None:
			self._gateway = self._gateway_factory()
		return self._gateway

	async def dispatch_due(self, now_seconds: Optional[int] = None, batch_limit: Optional[int] = None) -> DispatchResult:
		now_seconds = int(now_seconds if now_seconds is not None else time.time())
		limit = batch_limit or settings.notif_batch_limit
		members = await self.store.due_members(now_seconds, limit)
		result = DispatchResult(due=len(members))

		for member in members:
			try:
				await self._dispatch_member(member, now_seconds, result)
			except RedisError as exc:
				result.errors += 1
				obs_metrics.inc_dispatch_outcome("store_error")
				_LOG.warning("notif.dispatch_store_error", extra={"member": member, "reason": str(exc)})

		if result.due:
			_LOG.info("notif.dispatch_complete", extra=result.to_mapping())
		return result

	async def _dispatch_member(self, member: str, now_seconds: int, result: DispatchResult) -> None:
		ids = parse_member(member)
		subscription = await self.store.get(*ids) if ids else None
		if subscription is None:
			await self.store.prune_member(member)
			result.stale += 1
			obs_metrics.inc_stale_pruned()
			_LOG.info("notif.stale_member_pruned", extra={"member": member})
			return

		outcome, response, error = await self._attempt(subscription, now_seconds)
		result.count(outcome)
		obs_metrics.inc_dispatch_outcome(outcome.value)

		updated = self._apply_policy(subscription, outcome, response, error, now_seconds)
		if updated is None:
			if not await self.store.delete(subscription.fid, subscription.app_fid, expected_token=subscription.token):
				result.skipped += 1
				_LOG.info("notif.disable_skipped", extra={"member": member})
				return
			result.invalid_disabled += 1
			obs_metrics.inc_subscription_change("disabled_invalid")
			_LOG.info("notif.subscription_disabled", extra={"member": member, "invalid_streak": subscription.invalid_streak + 1})
			return
		if not await self.store.save(updated, require_existing=True):
			result.skipped += 1
			_LOG.info("notif.bookkeeping_skipped", extra={"member": member})

	async def _attempt(
		self, subscription: Subscription, now_seconds: int
	) -> tuple[DeliveryOutcome, Optional[GatewayResponse], Optional[str]]:
		request = PushRequest(
			notification_id=notification_id(subscription, now_seconds),
			title=settings.notif_title,
			body=settings.notif_body,
			target_url=target_url(),
			tokens=[subscription.token],
		)
		try:
			response = await self.gateway.send(subscription.url, request)
		except GatewayUnavailable as exc:
			return DeliveryOutcome.ERROR, None, exc.reason
		outcome, error = classify(subscription.token, response)
		return outcome, response, error

	def _apply_policy(
		self,
		subscription: Subscription,
		outcome: DeliveryOutcome,
		response: Optional[GatewayResponse],
		error: Optional[str],
		now_seconds: int,
	) -> Optional[Subscription]:
		"""Next state of the record, or None when it should be disabled."""
		changes: dict[str, Any] = {
			"last_attempt_at": now_seconds,
			"last_result": outcome.value,
			"last_response": summarise_response(response) if response is not None else None,
			"last_error": error,
			"updated_at": now_seconds,
		}
		if outcome is DeliveryOutcome.SENT:
			changes.update(
				last_sent_at=now_seconds,
				next_send_at=now_seconds + subscription.cadence_seconds,
				invalid_streak=0,
			)
		elif outcome is DeliveryOutcome.INVALID:
			streak = subscription.invalid_streak + 1
			if streak >= settings.notif_invalid_disable_threshold:
				return None
			changes.update(invalid_streak=streak, next_send_at=now_seconds + settings.notif_invalid_retry_seconds)
		elif outcome is DeliveryOutcome.RATE_LIMITED:
			changes.update(next_send_at=now_seconds + settings.notif_rate_limited_retry_seconds)
		else:
			changes.update(next_send_at=now_seconds + settings.notif_error_retry_seconds)
			_LOG.warning("notif.delivery_error", extra={"member": subscription.member, "reason": error})
		return dataclasses.replace(subscription, **changes)


__all__ = ["NotificationDispatcher", "classify", "notification_id", "summarise_response", "target_url"]
