import pytest

from ledgerboard.domain.leaderboard import keys, season
from ledgerboard.domain.leaderboard.models import RankingStream
from ledgerboard.domain.leaderboard.service import LeaderboardService
from ledgerboard.errors import ConfigurationError
from ledgerboard.infra.ledger import SCORE_SUBMITTED_TOPIC, TransactionReceipt
from ledgerboard.settings import settings

T0 = 1_700_000_000
WEEK = season.WINDOW_SECONDS
ALICE = "0x" + "11" * 20


def _service(ledger):
	return LeaderboardService(ledger_factory=lambda: ledger)


@pytest.mark.asyncio
async def test_missing_contract_is_a_configuration_error_before_any_write(fake_redis, fake_ledger):
	settings.score_contract_address = None

	with pytest.raises(ConfigurationError):
		await _service(fake_ledger).run_maintenance()

	assert await fake_redis.keys("*") == []


@pytest.mark.asyncio
async def test_run_maintenance_indexes_both_streams_then_finalizes(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)
	await fake_redis.zadd(keys.WATERMARKS_Z, {"all_time": 0, "weekly": 0})
	fake_ledger.head = 20
	fake_ledger.add(ALICE, height=10, score=64, best=128, ts=T0 + 30)

	result = await _service(fake_ledger).run_maintenance(now_seconds=T0 + WEEK + 1)

	assert result["ok"] is True
	assert result["allTime"]["logsProcessed"] == 1
	assert result["weekly"]["logsProcessed"] == 1
	assert result["snapshots"]["snappedWeeks"] == [0]
	assert await fake_redis.zscore(keys.ALL_TIME_Z, ALICE) == 128
	assert await fake_redis.zscore(keys.weekly_z(0), ALICE) == 64


@pytest.mark.asyncio
async def test_run_maintenance_reports_ledger_outage_without_crashing(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)
	fake_ledger.fail_head = True

	result = await _service(fake_ledger).run_maintenance(now_seconds=T0 + 5)

	assert result["ok"] is False
	assert "ledger_timeout" in result["allTime"]["error"]
	assert "ledger_timeout" in result["weekly"]["error"]
	assert result["snapshots"]["ok"] is True


@pytest.mark.asyncio
async def test_weekly_leaderboard_ranks_current_window(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)
	await fake_redis.zadd(keys.weekly_z(1), {"0xaaa": 5, "0xbbb": 50})
	await fake_redis.zadd(keys.WATERMARKS_Z, {"weekly": 777})

	board = await _service(fake_ledger).get_weekly_leaderboard(now_seconds=T0 + WEEK + 60)

	assert board.week_index == 1
	assert board.seconds_left == WEEK - 60
	assert board.updated_from_block == 777
	assert board.refreshed is False
	assert [(row.rank, row.address, row.best_score) for row in board.top100] == [(1, "0xbbb", 50), (2, "0xaaa", 5)]


@pytest.mark.asyncio
async def test_public_refresh_is_throttled(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)
	await fake_redis.zadd(keys.WATERMARKS_Z, {"weekly": 0})
	fake_ledger.head = 10_000
	service = _service(fake_ledger)

	first = await service.get_weekly_leaderboard(refresh=True, now_seconds=T0 + 10)
	second = await service.get_weekly_leaderboard(refresh=True, now_seconds=T0 + 11)

	assert first.refreshed is True
	assert second.refreshed is False
	assert first.updated_from_block == settings.public_refresh_max_blocks
	assert await fake_redis.ttl(keys.PUBLIC_REFRESH_GUARD) > 0


@pytest.mark.asyncio
async def test_all_time_leaderboard(fake_redis, fake_ledger):
	await fake_redis.zadd(keys.ALL_TIME_Z, {"0xaaa": 1, "0xbbb": 3, "0xccc": 2})

	board = await _service(fake_ledger).get_all_time_leaderboard(limit=2)

	assert [row.address for row in board.top100] == ["0xbbb", "0xccc"]
	assert board.updated_from_block is None


@pytest.mark.asyncio
async def test_list_snapshots_newest_first_and_capped(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)
	service = _service(fake_ledger)
	await service.finalize(now_seconds=T0 + 4 * WEEK + 1)

	listing = await service.list_snapshots(limit=2)
	capped = await service.list_snapshots(limit=500)

	assert listing.count == 2
	assert [item["weekIndex"] for item in listing.snapshots] == [3, 2]
	assert capped.count == 4


@pytest.mark.asyncio
async def test_rollover_refreshes_current_window_record(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)

	result = await _service(fake_ledger).rollover(now_seconds=T0 + 2 * WEEK + 3)

	assert result["weekIndex"] == 2
	assert result["snapshots"]["snappedWeeks"] == [0, 1]


@pytest.mark.asyncio
async def test_ingest_transaction_applies_receipt_logs(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)
	tx_hash = "0x" + "cd" * 32
	data = "0x" + "".join(format(value, "064x") for value in (90, 150, 7))
	log = {
		"address": settings.score_contract_address,
		"topics": [SCORE_SUBMITTED_TOPIC, "0x" + "0" * 24 + ALICE[2:]],
		"data": data,
		"blockNumber": hex(42),
		"logIndex": "0x0",
		"transactionHash": tx_hash,
	}
	fake_ledger.receipts[tx_hash] = TransactionReceipt(tx_hash=tx_hash, status=1, block_height=42, logs=[log])
	fake_ledger.timestamps[42] = T0 + 120

	result = await _service(fake_ledger).ingest_transaction(tx_hash)

	assert result.events_applied == {"all_time": 1, "weekly": 1}
	assert await fake_redis.zscore(keys.ALL_TIME_Z, ALICE) == 150
	assert await fake_redis.zscore(keys.weekly_z(0), ALICE) == 90
	# The sweep's watermark is untouched.
	assert await fake_redis.zscore(keys.WATERMARKS_Z, RankingStream.WEEKLY.value) is None


def _receipt(tx_hash, *, height, score, best):
	data = "0x" + "".join(format(value, "064x") for value in (score, best, 1))
	log = {
		"address": settings.score_contract_address,
		"topics": [SCORE_SUBMITTED_TOPIC, "0x" + "0" * 24 + ALICE[2:]],
		"data": data,
		"blockNumber": hex(height),
		"logIndex": "0x0",
		"transactionHash": tx_hash,
	}
	return TransactionReceipt(tx_hash=tx_hash, status=1, block_height=height, logs=[log])


@pytest.mark.asyncio
async def test_replaying_an_older_receipt_never_lowers_all_time_best(fake_redis, fake_ledger):
	await season.get_or_init_epoch(T0)
	newer, older = "0x" + "ee" * 32, "0x" + "aa" * 32
	fake_ledger.receipts[older] = _receipt(older, height=10, score=100, best=100)
	fake_ledger.receipts[newer] = _receipt(newer, height=20, score=900, best=900)
	fake_ledger.timestamps.update({10: T0 + 60, 20: T0 + 120})
	service = _service(fake_ledger)

	await service.ingest_transaction(newer)
	await service.ingest_transaction(older)

	assert await fake_redis.zscore(keys.ALL_TIME_Z, ALICE) == 900
	assert await fake_redis.zscore(keys.weekly_z(0), ALICE) == 900
