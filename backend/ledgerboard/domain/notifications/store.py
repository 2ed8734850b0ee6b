"""Redis-backed subscription records and the due-time index.

Every write that touches a record also touches its due-index member inside the
same MULTI/EXEC, so the two never disagree after a crash. Keys:

- notif:user:{fid}:{app_fid}  JSON record
- notif:due                   zset, member "{fid}:{app_fid}", score = nextSendAt
- notif:events                bounded list of token-free webhook breadcrumbs
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis.exceptions import WatchError

from ledgerboard.domain.notifications.models import Subscription, member_key
from ledgerboard.infra.redis import redis_client
from ledgerboard.settings import settings

_LOG = logging.getLogger(__name__)

DUE_Z = "notif:due"
EVENTS_LIST = "notif:events"


def record_key(fid: int, app_fid: int) -> str:
	return f"notif:user:{fid}:{app_fid}"


class SubscriptionStore:
	def __init__(self) -> None:
		self._redis = redis_client

	async def get(self, fid: int, app_fid: int) -> Optional[Subscription]:
		raw = await self._redis.get(record_key(fid, app_fid))
		if not raw:
			return None
		try:
			decoded = json.loads(raw)
		except ValueError:
			_LOG.warning("notif.record_corrupt", extra={"fid": fid, "app_fid": app_fid})
			return None
		return Subscription.from_mapping(decoded)

	async def upsert(
		self,
		*,
		fid: int,
		app_fid: int,
		url: str,
		token: str,
		now_seconds: int,
		cadence_hours: Optional[int] = None,
	) -> Subscription:
		"""Create or refresh a subscription and schedule its first reminder one cadence out."""
		previous = await self.get(fid, app_fid)
		cadence = cadence_hours or settings.notif_cadence_hours
		subscription = Subscription(
			fid=fid,
			app_fid=app_fid,
			url=url,
			token=token,
			cadence_hours=cadence,
			next_send_at=now_seconds + cadence * 3600,
			last_sent_at=previous.last_sent_at if previous else None,
			created_at=previous.created_at if previous and previous.created_at else now_seconds,
			updated_at=now_seconds,
		)
		await self.save(subscription)
		return subscription

	async def save(self, subscription: Subscription, *, require_existing: bool = False) -> bool:
		"""Write the record and its due-index score together.

		With `require_existing`, the write is skipped (False) when the record was
		deleted or replaced after it was read, so an opt-out racing a delivery
		attempt is never resurrected.
		"""
		key = record_key(subscription.fid, subscription.app_fid)
		payload = json.dumps(subscription.to_mapping())
		if not require_existing:
			async with self._redis.pipeline(transaction=True) as pipe:
				pipe.set(key, payload)
				pipe.zadd(DUE_Z, {subscription.member: subscription.next_send_at})
				await pipe.execute()
			return True

		async with self._redis.pipeline(transaction=True) as pipe:
			try:
				await pipe.watch(key)
				current = await pipe.get(key)
				if not current or not _same_token(current, subscription.token):
					await pipe.unwatch()
					return False
				pipe.multi()
				pipe.set(key, payload)
				pipe.zadd(DUE_Z, {subscription.member: subscription.next_send_at})
				await pipe.execute()
			except WatchError:
				return False
		return True

	async def delete(self, fid: int, app_fid: int, *, expected_token: Optional[str] = None) -> bool:
		"""Remove the record and its index entry together.

		With `expected_token`, nothing is removed (False) unless the stored record
		still carries that token, so a re-subscription made while a push was in
		flight survives a disable decided on the old token.
		"""
		key = record_key(fid, app_fid)
		if expected_token is None:
			async with self._redis.pipeline(transaction=True) as pipe:
				pipe.delete(key)
				pipe.zrem(DUE_Z, member_key(fid, app_fid))
				deleted, _ = await pipe.execute()
			return bool(deleted)

		async with self._redis.pipeline(transaction=True) as pipe:
			try:
				await pipe.watch(key)
				current = await pipe.get(key)
				if not current or not _same_token(current, expected_token):
					await pipe.unwatch()
					return False
				pipe.multi()
				pipe.delete(key)
				pipe.zrem(DUE_Z, member_key(fid, app_fid))
				await pipe.execute()
			except WatchError:
				return False
		return True

	async def due_members(self, now_seconds: int, limit: int) -> list[str]:
		"""Earliest-due first, at most `limit` members with score <= now."""
		members = await self._redis.zrangebyscore(DUE_Z, "-inf", now_seconds, start=0, num=max(1, limit))
		return [str(member) for member in members]

	async def prune_member(self, member: str) -> int:
		return int(await self._redis.zrem(DUE_Z, member))

	async def registered_count(self) -> int:
		return int(await self._redis.zcard(DUE_Z))

	async def due_count(self, now_seconds: int) -> int:
		return int(await self._redis.zcount(DUE_Z, "-inf", now_seconds))

	async def soonest(self) -> Optional[tuple[str, int]]:
		rows = await self._redis.zrange(DUE_Z, 0, 0, withscores=True)
		if not rows:
			return None
		member, score = rows[0]
		return str(member), int(score)

	async def all_members(self) -> list[str]:
		return [str(member) for member in await self._redis.zrange(DUE_Z, 0, -1)]

	async def append_event(self, entry: dict[str, Any]) -> None:
		size = max(1, settings.notif_event_log_size)
		async with self._redis.pipeline(transaction=True) as pipe:
			pipe.lpush(EVENTS_LIST, json.dumps(entry))
			pipe.ltrim(EVENTS_LIST, 0, size - 1)
			await pipe.execute()

	async def recent_events(self, limit: int = 50) -> list[dict[str, Any]]:
		raw = await self._redis.lrange(EVENTS_LIST, 0, max(1, limit) - 1)
		events: list[dict[str, Any]] = []
		for item in raw:
			try:
				events.append(json.loads(item))
			except ValueError:
				events.append({"raw": str(item)})
		events.sort(key=lambda event: event.get("ts") or 0, reverse=True)
		return events


def _same_token(raw: str, token: str) -> bool:
	try:
		return json.loads(raw).get("token") == token
	except (ValueError, AttributeError):
		return False


__all__ = ["DUE_Z", "EVENTS_LIST", "SubscriptionStore", "record_key"]
