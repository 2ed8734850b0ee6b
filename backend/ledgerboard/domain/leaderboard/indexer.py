"""Chunked, resumable indexer from the ScoreSubmitted log into Redis rankings."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from redis.exceptions import RedisError

from ledgerboard.domain.leaderboard import keys, season
from ledgerboard.domain.leaderboard.models import IndexResult, RankingStream, Watermark
from ledgerboard.errors import UpstreamUnavailable
from ledgerboard.infra.ledger import (
	SCORE_SUBMITTED_TOPIC,
	LedgerClient,
	LedgerEvent,
	decode_score_submitted,
	normalize_address,
)
from ledgerboard.infra.redis import redis_client
from ledgerboard.obs import metrics as obs_metrics
from ledgerboard.settings import settings

_LOG = logging.getLogger(__name__)


async def read_watermark(stream: RankingStream) -> Optional[Watermark]:
	score = await redis_client.zscore(keys.WATERMARKS_Z, stream.value)
	if score is None:
		return None
	return Watermark(stream=stream, last_processed_height=int(score))


class LeaderboardIndexer:
	"""Drives the ledger in bounded chunks for one ranking stream.

	The sweep trusts the contract's `bestScore` for all-time and overwrites. Weekly
	rankings bucket each event by its block timestamp and only ever raise a
	subject's score (ZADD GT), so replaying a chunk can never lower anything.
	Each chunk's ranking writes and its watermark go out in one MULTI/EXEC, the
	watermark last and with ZADD GT so overlapping invocations cannot move it back.
	"""

	def __init__(
		self,
		ledger: LedgerClient,
		*,
		contract: str,
		stream: RankingStream,
		chunk_blocks: Optional[int] = None,
		timestamp_concurrency: Optional[int] = None,
		window_seconds: Optional[int] = None,
		backfill_from: Optional[int] = None,
	) -> None:
		self.ledger = ledger
		self.contract = normalize_address(contract)
		self.stream = stream
		self.chunk_blocks = max(1, chunk_blocks or settings.ledger_chunk_blocks)
		self.timestamp_concurrency = max(1, timestamp_concurrency or settings.ledger_timestamp_concurrency)
		self.window_seconds = window_seconds or settings.window_seconds
		self.backfill_from = backfill_from
		self._redis = redis_client
		self._ts_cache: dict[int, int] = {}

	async def index(self, max_blocks: Optional[int] = None) -> IndexResult:
		epoch = await season.get_or_init_epoch() if self.stream is RankingStream.WEEKLY else 0
		head = await self.ledger.get_head()
		watermark = await read_watermark(self.stream)

		if watermark is None:
			if self.backfill_from is None:
				# First activation starts counting at the head; history is not backfilled.
				await self._redis.zadd(keys.WATERMARKS_Z, {self.stream.value: head}, gt=True)
				obs_metrics.mark_chunk_committed(self.stream.value, head)
				_LOG.info("indexer.initialised", extra={"stream": self.stream.value, "height": head})
				return IndexResult(stream=self.stream, from_height=head, to_height=head, initialised=True)
			from_height = max(0, self.backfill_from)
		else:
			from_height = watermark.last_processed_height + 1

		to_height = head
		if max_blocks is not None and max_blocks > 0:
			to_height = min(head, from_height + max_blocks - 1)

		result = IndexResult(stream=self.stream, from_height=from_height, to_height=to_height)
		if from_height > to_height:
			return result

		touched: set[str] = set()
		for start in range(from_height, to_height + 1, self.chunk_blocks):
			end = min(start + self.chunk_blocks - 1, to_height)
			try:
				events = await self.ledger.get_logs(self.contract, SCORE_SUBMITTED_TOPIC, start, end)
				if self.stream is RankingStream.WEEKLY:
					await self._resolve_timestamps(events)
				async with self._redis.pipeline(transaction=True) as pipe:
					applied = self._stage_events(pipe, events, epoch)
					pipe.zadd(keys.WATERMARKS_Z, {self.stream.value: end}, gt=True)
					await pipe.execute()
			except (UpstreamUnavailable, RedisError) as exc:
				reason = getattr(exc, "reason", type(exc).__name__)
				obs_metrics.inc_indexer_failure(self.stream.value, type(exc).__name__)
				_LOG.warning(
					"indexer.chunk_aborted",
					extra={"stream": self.stream.value, "chunk_start": start, "chunk_end": end, "reason": reason},
				)
				result.to_height = start - 1
				result.error = str(exc)
				break
			touched.update(applied)
			result.events_processed += len(events)
			result.chunks_committed += 1
			obs_metrics.inc_indexer_events(self.stream.value, len(events))
			obs_metrics.mark_chunk_committed(self.stream.value, end)
			_LOG.debug(
				"indexer.chunk_committed",
				extra={"stream": self.stream.value, "chunk_start": start, "chunk_end": end, "events": len(events)},
			)

		result.subjects_touched = len(touched)
		_LOG.info("indexer.run_complete", extra=result.to_mapping())
		return result

	async def ingest_receipt(self, tx_hash: str) -> int:
		"""Apply the ScoreSubmitted logs of one confirmed transaction right away.

		The watermark is left alone; the regular sweep replays the same block later
		and the upserts are idempotent. Any caller can name any hash, so all-time
		writes here only ever raise a score: replaying an old receipt is a no-op.
		"""
		receipt = await self.ledger.get_transaction_receipt(tx_hash)
		if receipt is None or not receipt.succeeded:
			return 0
		events: list[LedgerEvent] = []
		for log in receipt.logs:
			if normalize_address(log.get("address")) != self.contract:
				continue
			event = decode_score_submitted({**log, "blockNumber": log.get("blockNumber") or receipt.block_height})
			if event is not None:
				events.append(event)
		if not events:
			return 0
		epoch = 0
		if self.stream is RankingStream.WEEKLY:
			epoch = await season.get_or_init_epoch()
			await self._resolve_timestamps(events)
		async with self._redis.pipeline(transaction=True) as pipe:
			self._stage_events(pipe, events, epoch, monotonic=True)
			await pipe.execute()
		obs_metrics.inc_indexer_events(self.stream.value, len(events))
		return len(events)

	def _stage_events(self, pipe, events: Iterable[LedgerEvent], epoch: int, *, monotonic: bool = False) -> set[str]:
		touched: set[str] = set()
		for event in events:
			if self.stream is RankingStream.ALL_TIME:
				pipe.zadd(keys.ALL_TIME_Z, {event.subject: event.best_score}, gt=monotonic)
				touched.add(event.subject)
				continue
			ts = event.block_timestamp if event.block_timestamp is not None else self._ts_cache.get(event.block_height)
			if ts is None:
				continue
			index = season.window_index(epoch, ts, self.window_seconds)
			if index < 0:
				continue
			pipe.zadd(keys.weekly_z(index), {event.subject: event.reported_score}, gt=True)
			touched.add(event.subject)
		return touched

	async def _resolve_timestamps(self, events: Iterable[LedgerEvent]) -> None:
		missing: set[int] = set()
		for event in events:
			if event.block_timestamp is not None:
				self._ts_cache.setdefault(event.block_height, event.block_timestamp)
			elif event.block_height not in self._ts_cache:
				missing.add(event.block_height)
		if not missing:
			return
		semaphore = asyncio.Semaphore(self.timestamp_concurrency)

		async def _fetch(height: int) -> None:
			async with semaphore:
				self._ts_cache[height] = await self.ledger.get_block_timestamp(height)

		tasks = [asyncio.ensure_future(_fetch(height)) for height in sorted(missing)]
		try:
			await asyncio.gather(*tasks)
		except BaseException:
			# one failed lookup aborts the chunk; stop and reap the rest
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			raise


__all__ = ["LeaderboardIndexer", "read_watermark"]
