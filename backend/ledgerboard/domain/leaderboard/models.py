"""Domain models for on-chain leaderboards & weekly seasons."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional


class RankingStream(str, Enum):
	"""Independently watermarked ranking streams fed from the same event log."""

	ALL_TIME = "all_time"
	WEEKLY = "weekly"


def iso_seconds(epoch_seconds: int) -> str:
	return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class RankingEntry:
	"""One subject's score inside a ranking."""

	subject: str
	score: int

	def to_mapping(self) -> dict[str, Any]:
		return {"address": self.subject, "bestScore": self.score}

	@classmethod
	def from_mapping(cls, mapping: Mapping[str, Any]) -> "RankingEntry":
		return cls(subject=str(mapping.get("address") or ""), score=int(mapping.get("bestScore") or 0))


@dataclass(slots=True)
class WindowMeta:
	"""Position of `now` inside the weekly season grid."""

	epoch_seconds: int
	window_index: int
	window_start: int
	window_end: int
	seconds_left: int

	def to_mapping(self) -> dict[str, Any]:
		return {
			"weekIndex": self.window_index,
			"weekStartsAt": iso_seconds(self.window_start),
			"weekEndsAt": iso_seconds(self.window_end),
			"secondsLeft": self.seconds_left,
			"epochSeconds": self.epoch_seconds,
		}


@dataclass(slots=True)
class Watermark:
	stream: RankingStream
	last_processed_height: int


@dataclass(slots=True)
class IndexResult:
	"""Outcome of one indexer invocation for a single stream."""

	stream: RankingStream
	from_height: int
	to_height: int
	events_processed: int = 0
	subjects_touched: int = 0
	chunks_committed: int = 0
	initialised: bool = False
	error: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.error is None

	def to_mapping(self) -> dict[str, Any]:
		payload: dict[str, Any] = {
			"ok": self.ok,
			"stream": self.stream.value,
			"fromBlock": self.from_height,
			"toBlock": self.to_height,
			"logsProcessed": self.events_processed,
			"usersTouched": self.subjects_touched,
			"chunksCommitted": self.chunks_committed,
		}
		if self.initialised:
			payload["initialised"] = True
		if self.error:
			payload["error"] = self.error
		return payload


@dataclass(slots=True)
class SnapshotRecord:
	"""Immutable top-N record for a completed window."""

	window_index: int
	window_start: int
	window_end: int
	created_at: int
	top: list[RankingEntry] = field(default_factory=list)
	chain_id: Optional[int] = None
	contract: Optional[str] = None

	def to_mapping(self) -> dict[str, Any]:
		return {
			"weekIndex": self.window_index,
			"weekStart": self.window_start,
			"weekEnd": self.window_end,
			"weekStartsAt": iso_seconds(self.window_start),
			"weekEndsAt": iso_seconds(self.window_end),
			"createdAt": iso_seconds(self.created_at),
			"createdAtSeconds": self.created_at,
			"chainId": self.chain_id,
			"contract": self.contract,
			"top100": [entry.to_mapping() for entry in self.top],
		}

	@classmethod
	def from_mapping(cls, mapping: Mapping[str, Any]) -> "SnapshotRecord":
		return cls(
			window_index=int(mapping["weekIndex"]),
			window_start=int(mapping.get("weekStart") or 0),
			window_end=int(mapping.get("weekEnd") or 0),
			created_at=int(mapping.get("createdAtSeconds") or 0),
			top=[RankingEntry.from_mapping(item) for item in mapping.get("top100") or []],
			chain_id=mapping.get("chainId"),
			contract=mapping.get("contract"),
		)


@dataclass(slots=True)
class FinalizeResult:
	current_window_index: int
	snapped_window_indices: list[int] = field(default_factory=list)
	error: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.error is None

	def to_mapping(self) -> dict[str, Any]:
		payload: dict[str, Any] = {
			"ok": self.ok,
			"currentWeekIndex": self.current_window_index,
			"snappedWeeks": list(self.snapped_window_indices),
		}
		if self.error:
			payload["error"] = self.error
		return payload
