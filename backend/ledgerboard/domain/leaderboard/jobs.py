"""Entry points invoked by the external trigger surface (cron routes, scripts)."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ledgerboard.domain.leaderboard.service import LeaderboardService

_service = LeaderboardService()


async def sync_leaderboards(*, max_blocks: Optional[int] = None) -> Dict[str, Any]:
	"""Index both streams then snapshot any windows that closed meanwhile.

	The weekly stream is capped by `max_blocks` as well so a single trigger stays
	inside its wall-clock budget; the rest is picked up by the next invocation.
	"""

	return await _service.run_maintenance(max_blocks_all_time=max_blocks, max_blocks_weekly=max_blocks)


async def snapshot_weekly() -> Dict[str, Any]:
	result = await _service.finalize()
	return result.to_mapping()


async def rollover_weekly() -> Dict[str, Any]:
	return await _service.rollover()
