"""FastAPI routes for the public leaderboards and weekly snapshots."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, Query

from ledgerboard.api.deps import require_admin
from ledgerboard.domain.leaderboard import jobs as leaderboard_jobs
from ledgerboard.domain.leaderboard.schemas import (
	AllTimeLeaderboardSchema,
	SnapshotListSchema,
	SubmissionIngestSchema,
	WeeklyLeaderboardSchema,
)
from ledgerboard.domain.leaderboard.service import MAX_SNAPSHOT_PAGE, LeaderboardService

router = APIRouter(tags=["leaderboard"])

_service = LeaderboardService()


def get_service() -> LeaderboardService:
	return _service


@router.get("/leaderboard", response_model=WeeklyLeaderboardSchema, response_model_by_alias=True)
async def weekly_leaderboard_endpoint(
	refresh: bool = Query(default=False, description="Run a small, throttled sync first"),
	limit: int = Query(default=100, ge=1, le=100),
	service: LeaderboardService = Depends(get_service),
) -> WeeklyLeaderboardSchema:
	return await service.get_weekly_leaderboard(refresh=refresh, limit=limit)


@router.get("/leaderboard/all-time", response_model=AllTimeLeaderboardSchema, response_model_by_alias=True)
async def all_time_leaderboard_endpoint(
	limit: int = Query(default=100, ge=1, le=100),
	service: LeaderboardService = Depends(get_service),
) -> AllTimeLeaderboardSchema:
	return await service.get_all_time_leaderboard(limit=limit)


@router.post(
	"/leaderboard/submissions/{tx_hash}",
	response_model=SubmissionIngestSchema,
	response_model_by_alias=True,
)
async def ingest_submission_endpoint(
	tx_hash: str = Path(..., pattern=r"^0x[0-9a-fA-F]{64}$"),
	service: LeaderboardService = Depends(get_service),
) -> SubmissionIngestSchema:
	return await service.ingest_transaction(tx_hash)


@router.api_route("/weekly/rollover", methods=["GET", "POST"])
async def weekly_rollover_endpoint() -> Dict[str, Any]:
	return await leaderboard_jobs.rollover_weekly()


@router.get(
	"/admin/weekly-snapshots",
	response_model=SnapshotListSchema,
	response_model_by_alias=True,
	dependencies=[Depends(require_admin)],
)
async def weekly_snapshots_endpoint(
	limit: int = Query(default=12, ge=1, le=MAX_SNAPSHOT_PAGE),
	service: LeaderboardService = Depends(get_service),
) -> SnapshotListSchema:
	return await service.list_snapshots(limit=limit)
