"""Service layer for on-chain leaderboards & weekly seasons."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from ledgerboard.domain.leaderboard import keys, season
from ledgerboard.domain.leaderboard.indexer import LeaderboardIndexer, read_watermark
from ledgerboard.domain.leaderboard.models import FinalizeResult, IndexResult, RankingEntry, RankingStream
from ledgerboard.domain.leaderboard.schemas import (
	AllTimeLeaderboardSchema,
	RankedEntrySchema,
	SnapshotListSchema,
	SubmissionIngestSchema,
	WeeklyLeaderboardSchema,
)
from ledgerboard.domain.leaderboard.snapshots import SnapshotFinalizer, read_top, write_current_window
from ledgerboard.errors import ConfigurationError, UpstreamUnavailable
from ledgerboard.infra import http
from ledgerboard.infra.ledger import LedgerClient, build_ledger_client, require_contract_address
from ledgerboard.infra.redis import redis_client
from ledgerboard.settings import settings

_LOG = logging.getLogger(__name__)

MAX_SNAPSHOT_PAGE = 52


def _ranked(entries: list[RankingEntry]) -> list[RankedEntrySchema]:
	return [
		RankedEntrySchema(rank=idx, address=entry.subject, best_score=entry.score)
		for idx, entry in enumerate(entries, start=1)
	]


class LeaderboardService:
	"""Coordinates indexing, snapshotting, and API results."""

	def __init__(self, ledger_factory: Optional[Callable[[], LedgerClient]] = None) -> None:
		self._redis = redis_client
		self._ledger_factory = ledger_factory or (lambda: build_ledger_client(http.get_client()))

	def indexer(self, stream: RankingStream) -> LeaderboardIndexer:
		"""Build an indexer, raising ConfigurationError before any I/O if unconfigured."""
		contract = require_contract_address()
		ledger = self._ledger_factory()
		backfill = settings.score_contract_deploy_block if stream is RankingStream.ALL_TIME else None
		return LeaderboardIndexer(ledger, contract=contract, stream=stream, backfill_from=backfill)

	async def sync(self, stream: RankingStream, *, max_blocks: Optional[int] = None) -> IndexResult:
		return await self.indexer(stream).index(max_blocks=max_blocks)

	async def finalize(self, *, now_seconds: Optional[int] = None) -> FinalizeResult:
		return await SnapshotFinalizer().finalize_completed_windows(now_seconds)

	async def run_maintenance(
		self,
		*,
		max_blocks_all_time: Optional[int] = None,
		max_blocks_weekly: Optional[int] = None,
		now_seconds: Optional[int] = None,
	) -> Dict[str, Any]:
		"""All-time sync, then weekly sync, then finalize, in that order."""
		all_time_indexer = self.indexer(RankingStream.ALL_TIME)
		weekly_indexer = self.indexer(RankingStream.WEEKLY)
		all_time = await self._guarded_index(all_time_indexer, max_blocks_all_time)
		weekly = await self._guarded_index(weekly_indexer, max_blocks_weekly)
		snapshots = await self.finalize(now_seconds=now_seconds)
		return {
			"ok": all_time.ok and weekly.ok and snapshots.ok,
			"contract": all_time_indexer.contract,
			"allTime": all_time.to_mapping(),
			"weekly": weekly.to_mapping(),
			"snapshots": snapshots.to_mapping(),
		}

	async def _guarded_index(self, indexer: LeaderboardIndexer, max_blocks: Optional[int]) -> IndexResult:
		# Head lookup or epoch init can fail before the first chunk starts.
		try:
			return await indexer.index(max_blocks=max_blocks)
		except UpstreamUnavailable as exc:
			_LOG.warning("leaderboard.sync_unavailable", extra={"stream": indexer.stream.value, "reason": exc.reason})
			watermark = await read_watermark(indexer.stream)
			height = watermark.last_processed_height if watermark else 0
			return IndexResult(stream=indexer.stream, from_height=height + 1, to_height=height, error=str(exc))

	async def rollover(self, *, now_seconds: Optional[int] = None) -> Dict[str, Any]:
		now_seconds = int(now_seconds if now_seconds is not None else time.time())
		snapshots = await self.finalize(now_seconds=now_seconds)
		epoch = await season.get_or_init_epoch(now_seconds)
		meta = season.current_window_meta(epoch, now_seconds, settings.window_seconds)
		await write_current_window(meta, now_seconds)
		return {"ok": snapshots.ok, "snapshots": snapshots.to_mapping(), **meta.to_mapping()}

	async def _try_public_refresh(self, now_seconds: int) -> bool:
		"""Run a small weekly sync at most once per refresh interval across all callers."""
		acquired = await self._redis.set(
			keys.PUBLIC_REFRESH_GUARD,
			str(now_seconds),
			ex=max(1, settings.public_refresh_interval_seconds),
			nx=True,
		)
		if not acquired:
			return False
		try:
			await self.sync(RankingStream.WEEKLY, max_blocks=settings.public_refresh_max_blocks)
		except (ConfigurationError, UpstreamUnavailable) as exc:
			_LOG.warning("leaderboard.public_refresh_skipped", extra={"reason": exc.reason})
			return False
		return True

	async def get_weekly_leaderboard(
		self,
		*,
		refresh: bool = False,
		limit: int = 100,
		now_seconds: Optional[int] = None,
	) -> WeeklyLeaderboardSchema:
		now_seconds = int(now_seconds if now_seconds is not None else time.time())
		refreshed = await self._try_public_refresh(now_seconds) if refresh else False
		epoch = await season.get_or_init_epoch(now_seconds)
		meta = season.current_window_meta(epoch, now_seconds, settings.window_seconds)
		entries = await read_top(keys.weekly_z(meta.window_index), limit)
		watermark = await read_watermark(RankingStream.WEEKLY)
		view = meta.to_mapping()
		return WeeklyLeaderboardSchema(
			chain_id=settings.chain_id,
			contract=settings.score_contract_address,
			week_index=meta.window_index,
			week_starts_at=view["weekStartsAt"],
			week_ends_at=view["weekEndsAt"],
			seconds_left=meta.seconds_left,
			updated_from_block=watermark.last_processed_height if watermark else None,
			refreshed=refreshed,
			top100=_ranked(entries),
		)

	async def get_all_time_leaderboard(self, *, limit: int = 100) -> AllTimeLeaderboardSchema:
		entries = await read_top(keys.ALL_TIME_Z, limit)
		watermark = await read_watermark(RankingStream.ALL_TIME)
		return AllTimeLeaderboardSchema(
			chain_id=settings.chain_id,
			contract=settings.score_contract_address,
			updated_from_block=watermark.last_processed_height if watermark else None,
			top100=_ranked(entries),
		)

	async def list_snapshots(self, *, limit: int = 12) -> SnapshotListSchema:
		limit = max(1, min(limit, MAX_SNAPSHOT_PAGE))
		snapshot_keys = await self._redis.lrange(keys.WEEKLY_SNAPSHOTS, 0, limit - 1)
		snapshots: list[dict[str, Any]] = []
		for key in snapshot_keys:
			raw = await self._redis.get(key)
			if raw:
				snapshots.append({"key": key, **json.loads(raw)})
		return SnapshotListSchema(count=len(snapshots), snapshots=snapshots)

	async def ingest_transaction(self, tx_hash: str) -> SubmissionIngestSchema:
		"""Fast path for a freshly confirmed submission, ahead of the next sweep."""
		applied: dict[str, int] = {}
		for stream in RankingStream:
			applied[stream.value] = await self.indexer(stream).ingest_receipt(tx_hash)
		return SubmissionIngestSchema(tx_hash=tx_hash.lower(), events_applied=applied)


__all__ = ["LeaderboardService", "MAX_SNAPSHOT_PAGE"]
