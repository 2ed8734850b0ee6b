"""Weekly season calculator.

A single epoch timestamp is stored once in Redis. Window index is
floor((t - epoch) / window), so the season grid starts the moment the weekly
leaderboard is first used and rolls over every seven days. Resetting the grid
means deleting the epoch key (and optionally the weekly sets and snapshots).
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from ledgerboard.domain.leaderboard import keys
from ledgerboard.domain.leaderboard.models import WindowMeta
from ledgerboard.infra.redis import redis_client

WINDOW_SECONDS = 7 * 24 * 60 * 60

_LOG = logging.getLogger(__name__)


def window_index(epoch_seconds: int, ts_seconds: int, window_seconds: int = WINDOW_SECONDS) -> int:
	"""Window containing `ts_seconds`, or -1 when it precedes the epoch."""
	delta = ts_seconds - epoch_seconds
	if delta < 0:
		return -1
	return delta // window_seconds


def window_bounds(epoch_seconds: int, index: int, window_seconds: int = WINDOW_SECONDS) -> tuple[int, int]:
	"""Half-open [start, end) bounds of window `index`."""
	start = epoch_seconds + index * window_seconds
	return start, start + window_seconds


def current_window_meta(epoch_seconds: int, now_seconds: int, window_seconds: int = WINDOW_SECONDS) -> WindowMeta:
	index = max(0, window_index(epoch_seconds, now_seconds, window_seconds))
	start, end = window_bounds(epoch_seconds, index, window_seconds)
	return WindowMeta(
		epoch_seconds=epoch_seconds,
		window_index=index,
		window_start=start,
		window_end=end,
		seconds_left=max(0, end - now_seconds),
	)


async def get_or_init_epoch(now_seconds: Optional[int] = None) -> int:
	"""Read the epoch anchor, creating it with SET NX on first use."""
	existing = await redis_client.get_int(keys.WEEKLY_EPOCH)
	if existing is not None:
		return existing
	now_seconds = int(now_seconds if now_seconds is not None else time.time())
	if await redis_client.set_if_absent(keys.WEEKLY_EPOCH, str(now_seconds)):
		_LOG.info("season.epoch_initialised", extra={"epoch_seconds": now_seconds})
		return now_seconds
	# Another initializer won the race; its value is authoritative.
	stored = await redis_client.get_int(keys.WEEKLY_EPOCH)
	return stored if stored is not None else now_seconds


__all__ = ["WINDOW_SECONDS", "current_window_meta", "get_or_init_epoch", "window_bounds", "window_index"]
