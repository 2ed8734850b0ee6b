"""Redis key layout for leaderboards.

- lb:z                         sorted set, member=address, score=best score (all time)
- lb:watermarks                sorted set, member=stream, score=last processed block
- lb:weekly:epoch              string, unix seconds of window 0
- lb:weekly:z:<idx>            sorted set per window
- lb:weekly:last_snapshot_week string, last fully snapshotted window
- lb:weekly:snapshot:<idx>     string, JSON snapshot record
- lb:weekly:snapshots          list of snapshot keys, newest first
- lb:weekly:current            string, JSON meta of the current window
"""

from __future__ import annotations

ALL_TIME_Z = "lb:z"
WATERMARKS_Z = "lb:watermarks"
WEEKLY_EPOCH = "lb:weekly:epoch"
WEEKLY_LAST_SNAPSHOT = "lb:weekly:last_snapshot_week"
WEEKLY_SNAPSHOTS = "lb:weekly:snapshots"
WEEKLY_CURRENT = "lb:weekly:current"
PUBLIC_REFRESH_GUARD = "lb:weekly:public_refresh"


def weekly_z(window_index: int) -> str:
	return f"lb:weekly:z:{window_index}"


def weekly_snapshot(window_index: int) -> str:
	return f"lb:weekly:snapshot:{window_index}"
