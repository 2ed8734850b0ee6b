"""Trigger endpoints for the external scheduler. All are idempotent and safe to overlap."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ledgerboard.api.deps import require_cron
from ledgerboard.domain.leaderboard import jobs as leaderboard_jobs
from ledgerboard.domain.notifications import jobs as notification_jobs
from ledgerboard.obs import logging as obs_logging

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron)])


@router.api_route("/sync-leaderboard", methods=["GET", "POST"])
async def sync_leaderboard_endpoint(
	max_blocks: Optional[int] = Query(default=None, alias="maxBlocks", ge=1),
) -> Dict[str, Any]:
	tokens = obs_logging.bind_context(trigger="sync-leaderboard")
	try:
		return await leaderboard_jobs.sync_leaderboards(max_blocks=max_blocks)
	finally:
		obs_logging.reset_context(tokens)


@router.api_route("/snapshot-weekly", methods=["GET", "POST"])
async def snapshot_weekly_endpoint() -> Dict[str, Any]:
	tokens = obs_logging.bind_context(trigger="snapshot-weekly")
	try:
		return await leaderboard_jobs.snapshot_weekly()
	finally:
		obs_logging.reset_context(tokens)


@router.api_route("/notifications", methods=["GET", "POST"])
async def notifications_endpoint() -> Dict[str, Any]:
	tokens = obs_logging.bind_context(trigger="notifications")
	try:
		return await notification_jobs.dispatch_notifications()
	finally:
		obs_logging.reset_context(tokens)
