import json

import pytest

from ledgerboard.domain.leaderboard import keys, season
from ledgerboard.domain.leaderboard.snapshots import SnapshotFinalizer, load_snapshot, read_top

T0 = 1_700_000_000
WEEK = season.WINDOW_SECONDS


@pytest.mark.asyncio
async def test_nothing_to_snapshot_during_first_window(fake_redis):
	await season.get_or_init_epoch(T0)

	result = await SnapshotFinalizer().finalize_completed_windows(T0 + 100)

	assert result.current_window_index == 0
	assert result.snapped_window_indices == []
	assert await fake_redis.get(keys.WEEKLY_LAST_SNAPSHOT) is None
	current = json.loads(await fake_redis.get(keys.WEEKLY_CURRENT))
	assert current["weekIndex"] == 0


@pytest.mark.asyncio
async def test_completed_window_snapshotted_once(fake_redis):
	await season.get_or_init_epoch(T0)
	await fake_redis.zadd(keys.weekly_z(0), {"0xaaa": 10, "0xbbb": 30, "0xccc": 20})
	finalizer = SnapshotFinalizer()

	first = await finalizer.finalize_completed_windows(T0 + WEEK + 5)
	second = await finalizer.finalize_completed_windows(T0 + WEEK + 600)

	assert first.snapped_window_indices == [0]
	assert second.snapped_window_indices == []
	assert await fake_redis.lrange(keys.WEEKLY_SNAPSHOTS, 0, -1) == [keys.weekly_snapshot(0)]
	record = await load_snapshot(0)
	assert [entry.subject for entry in record.top] == ["0xbbb", "0xccc", "0xaaa"]
	assert (record.window_start, record.window_end) == (T0, T0 + WEEK)
	assert record.created_at == T0 + WEEK + 5


@pytest.mark.asyncio
async def test_missed_windows_snapshotted_in_order(fake_redis):
	await season.get_or_init_epoch(T0)
	for window in range(3):
		await fake_redis.zadd(keys.weekly_z(window), {f"0x{window}": 100 + window})

	result = await SnapshotFinalizer().finalize_completed_windows(T0 + 3 * WEEK + 1)

	assert result.current_window_index == 3
	assert result.snapped_window_indices == [0, 1, 2]
	assert await fake_redis.get(keys.WEEKLY_LAST_SNAPSHOT) == "2"
	# History list is newest first.
	assert await fake_redis.lrange(keys.WEEKLY_SNAPSHOTS, 0, -1) == [
		keys.weekly_snapshot(2),
		keys.weekly_snapshot(1),
		keys.weekly_snapshot(0),
	]


@pytest.mark.asyncio
async def test_resumes_after_last_snapshotted_window(fake_redis):
	await season.get_or_init_epoch(T0)
	await fake_redis.set(keys.WEEKLY_LAST_SNAPSHOT, "0")

	result = await SnapshotFinalizer().finalize_completed_windows(T0 + 3 * WEEK + 1)

	assert result.snapped_window_indices == [1, 2]
	assert await fake_redis.get(keys.weekly_snapshot(0)) is None


@pytest.mark.asyncio
async def test_window_already_claimed_by_concurrent_finalizer_is_not_rewritten(fake_redis):
	await season.get_or_init_epoch(T0)
	await fake_redis.set(keys.WEEKLY_LAST_SNAPSHOT, "1")
	finalizer = SnapshotFinalizer()

	written = await finalizer._snapshot_window(T0, 1, T0 + 2 * WEEK)

	assert written is False
	assert await fake_redis.get(keys.weekly_snapshot(1)) is None
	assert await fake_redis.get(keys.WEEKLY_LAST_SNAPSHOT) == "1"


@pytest.mark.asyncio
async def test_snapshot_keeps_top_n_only(fake_redis):
	await season.get_or_init_epoch(T0)
	await fake_redis.zadd(keys.weekly_z(0), {f"0x{idx:04x}": idx for idx in range(10)})

	await SnapshotFinalizer(top_n=3).finalize_completed_windows(T0 + WEEK)

	record = await load_snapshot(0)
	assert [entry.score for entry in record.top] == [9, 8, 7]


@pytest.mark.asyncio
async def test_equal_scores_read_in_reverse_member_order(fake_redis):
	await fake_redis.zadd(keys.weekly_z(0), {"0xaa": 50, "0xcc": 50, "0xbb": 70})

	top = await read_top(keys.weekly_z(0), 10)

	assert [entry.subject for entry in top] == ["0xbb", "0xcc", "0xaa"]
