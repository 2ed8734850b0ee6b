"""Pydantic schemas for leaderboard APIs."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RankedEntrySchema(_CamelModel):
	rank: int = Field(..., ge=1)
	address: str
	best_score: int


class WeeklyLeaderboardSchema(_CamelModel):
	ok: bool = True
	scope: str = "weekly"
	chain_id: int
	contract: Optional[str] = None
	week_index: int
	week_starts_at: str
	week_ends_at: str
	seconds_left: int
	updated_from_block: Optional[int] = None
	refreshed: bool = False
	top100: list[RankedEntrySchema] = Field(default_factory=list)


class AllTimeLeaderboardSchema(_CamelModel):
	ok: bool = True
	scope: str = "all_time"
	chain_id: int
	contract: Optional[str] = None
	updated_from_block: Optional[int] = None
	top100: list[RankedEntrySchema] = Field(default_factory=list)


class SnapshotListSchema(_CamelModel):
	ok: bool = True
	count: int
	snapshots: list[dict[str, Any]] = Field(default_factory=list)


class SubmissionIngestSchema(_CamelModel):
	ok: bool = True
	tx_hash: str
	events_applied: dict[str, int] = Field(default_factory=dict)
