"""Materialises immutable top-N records for weekly windows that have closed."""

from __future__ import annotations

import json
import logging
import time
from typing import Optional

from redis.exceptions import RedisError, WatchError

from ledgerboard.domain.leaderboard import keys, season
from ledgerboard.domain.leaderboard.models import FinalizeResult, RankingEntry, SnapshotRecord, WindowMeta
from ledgerboard.infra.redis import redis_client
from ledgerboard.obs import metrics as obs_metrics
from ledgerboard.settings import settings

_LOG = logging.getLogger(__name__)


async def read_top(key: str, limit: int) -> list[RankingEntry]:
	"""Highest first; equal scores come back in Redis order, reverse-lexicographic by member."""
	rows = await redis_client.zrevrange(key, 0, limit - 1, withscores=True)
	return [RankingEntry(subject=str(member), score=int(score)) for member, score in rows]


async def load_snapshot(window_index: int) -> Optional[SnapshotRecord]:
	raw = await redis_client.get(keys.weekly_snapshot(window_index))
	if not raw:
		return None
	return SnapshotRecord.from_mapping(json.loads(raw))


async def write_current_window(meta: WindowMeta, now_seconds: int) -> None:
	"""Keep a small debug record of the current window up to date."""
	payload = {**meta.to_mapping(), "updatedAt": now_seconds}
	await redis_client.set(keys.WEEKLY_CURRENT, json.dumps(payload))


class SnapshotFinalizer:
	"""Snapshots every window in (last_snapshotted, current - 1], oldest first.

	Each window is committed in its own WATCHed transaction that writes the record,
	appends it to the history list and advances the watermark together. A crash
	leaves the watermark on the last fully written window; a concurrent finalizer
	that already moved the watermark makes our transaction abort instead of
	writing the window twice.
	"""

	def __init__(self, *, top_n: Optional[int] = None, window_seconds: Optional[int] = None) -> None:
		self.top_n = top_n or settings.snapshot_top_n
		self.window_seconds = window_seconds or settings.window_seconds
		self._redis = redis_client

	async def finalize_completed_windows(self, now_seconds: Optional[int] = None) -> FinalizeResult:
		now_seconds = int(now_seconds if now_seconds is not None else time.time())
		epoch = await season.get_or_init_epoch(now_seconds)
		meta = season.current_window_meta(epoch, now_seconds, self.window_seconds)
		await write_current_window(meta, now_seconds)

		result = FinalizeResult(current_window_index=meta.window_index)
		target = meta.window_index - 1
		if target < 0:
			return result

		last = await self._redis.get_int(keys.WEEKLY_LAST_SNAPSHOT, -1)
		for window in range(last + 1, target + 1):
			try:
				written = await self._snapshot_window(epoch, window, now_seconds)
			except RedisError as exc:
				_LOG.warning("snapshot.window_failed", extra={"window_index": window, "reason": str(exc)})
				result.error = str(exc)
				break
			if not written:
				# A concurrent finalizer owns this range now; stop without skipping ahead.
				break
			result.snapped_window_indices.append(window)

		if result.snapped_window_indices:
			_LOG.info("snapshot.run_complete", extra=result.to_mapping())
		return result

	async def _snapshot_window(self, epoch: int, window: int, now_seconds: int) -> bool:
		start, end = season.window_bounds(epoch, window, self.window_seconds)
		record = SnapshotRecord(
			window_index=window,
			window_start=start,
			window_end=end,
			created_at=now_seconds,
			top=await read_top(keys.weekly_z(window), self.top_n),
			chain_id=settings.chain_id,
			contract=settings.score_contract_address,
		)
		snapshot_key = keys.weekly_snapshot(window)
		async with self._redis.pipeline(transaction=True) as pipe:
			try:
				await pipe.watch(keys.WEEKLY_LAST_SNAPSHOT)
				raw_last = await pipe.get(keys.WEEKLY_LAST_SNAPSHOT)
				last = int(raw_last) if raw_last not in (None, "") else -1
				if last + 1 != window:
					await pipe.unwatch()
					obs_metrics.inc_snapshot_conflict()
					return False
				pipe.multi()
				pipe.set(snapshot_key, json.dumps(record.to_mapping()))
				pipe.lpush(keys.WEEKLY_SNAPSHOTS, snapshot_key)
				pipe.set(keys.WEEKLY_LAST_SNAPSHOT, str(window))
				await pipe.execute()
			except WatchError:
				obs_metrics.inc_snapshot_conflict()
				_LOG.info("snapshot.concurrent_finalizer", extra={"window_index": window})
				return False
		obs_metrics.inc_snapshot_written()
		_LOG.info("snapshot.written", extra={"window_index": window, "entries": len(record.top)})
		return True


__all__ = ["SnapshotFinalizer", "load_snapshot", "read_top", "write_current_window"]
