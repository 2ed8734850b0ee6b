import asyncio
import sys
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from ledgerboard.errors import GatewayUnavailable, LedgerUnavailable
from ledgerboard.infra.ledger import LedgerEvent, TransactionReceipt
from ledgerboard.infra.push_gateway import GatewayResponse, PushRequest, parse_gateway_payload
from ledgerboard.main import app
from ledgerboard.settings import settings

CONTRACT = "0x" + "ab" * 20
ADMIN_KEY = "test-admin-key"


class FakeLedger:
	"""In-memory ledger: a list of events, a head and per-height timestamps."""

	def __init__(self, *, head: int = 0, events: Optional[list[LedgerEvent]] = None) -> None:
		self.head = head
		self.events: list[LedgerEvent] = list(events or [])
		self.timestamps: dict[int, int] = {}
		self.receipts: dict[str, TransactionReceipt] = {}
		self.fail_logs_from: Optional[int] = None
		self.fail_head = False
		self.log_calls: list[tuple[int, int]] = []
		self.timestamp_calls: list[int] = []
		self.in_flight = 0
		self.max_in_flight = 0

	def add(self, subject: str, *, height: int, score: int, best: Optional[int] = None, ts: Optional[int] = None) -> None:
		self.events.append(
			LedgerEvent(
				subject=subject.lower(),
				reported_score=score,
				best_score=best if best is not None else score,
				block_height=height,
				block_timestamp=None,
			)
		)
		if ts is not None:
			self.timestamps[height] = ts

	async def get_head(self) -> int:
		if self.fail_head:
			raise LedgerUnavailable("ledger_timeout:eth_blockNumber")
		return self.head

	async def get_logs(self, address: str, topic: str, from_height: int, to_height: int) -> list[LedgerEvent]:
		self.log_calls.append((from_height, to_height))
		if self.fail_logs_from is not None and from_height >= self.fail_logs_from:
			raise LedgerUnavailable("ledger_timeout:eth_getLogs")
		return [event for event in self.events if from_height <= event.block_height <= to_height]

	async def get_block_timestamp(self, height: int) -> int:
		self.timestamp_calls.append(height)
		self.in_flight += 1
		self.max_in_flight = max(self.max_in_flight, self.in_flight)
		try:
			await asyncio.sleep(0)
			return self.timestamps[height]
		finally:
			self.in_flight -= 1

	async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
		return self.receipts.get(tx_hash.lower())


class FakeGateway:
	"""Answers every push with a fixed per-token classification."""

	def __init__(self, mode: str = "sent") -> None:
		self.mode = mode
		self.requests: list[tuple[str, PushRequest]] = []
		self.on_send = None

	async def send(self, url: str, request: PushRequest) -> GatewayResponse:
		self.requests.append((url, request))
		if self.on_send is not None:
			await self.on_send(url, request)
		tokens = list(request.tokens)
		if self.mode == "unavailable":
			raise GatewayUnavailable("gateway_timeout")
		if self.mode == "http_500":
			return parse_gateway_payload(500, {"error": "boom"})
		if self.mode == "unknown":
			return parse_gateway_payload(200, {"result": {"successfulTokens": []}})
		lists = {"successfulTokens": [], "invalidTokens": [], "rateLimitedTokens": []}
		field = {"sent": "successfulTokens", "invalid": "invalidTokens", "rate_limited": "rateLimitedTokens"}[self.mode]
		lists[field] = tokens
		return parse_gateway_payload(200, {"result": lists})


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from ledgerboard.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Pin the settings the tests rely on and restore them afterwards."""
	fields = (
		"environment",
		"cron_secret",
		"admin_key",
		"score_contract_address",
		"score_contract_deploy_block",
		"ledger_rpc_url",
		"notif_cadence_hours",
		"notif_event_log_size",
		"obs_metrics_public",
	)
	original = {name: getattr(settings, name) for name in fields}
	settings.environment = "test"
	settings.cron_secret = None
	settings.admin_key = ADMIN_KEY
	settings.score_contract_address = CONTRACT
	settings.score_contract_deploy_block = None
	settings.ledger_rpc_url = "http://ledger.test/rpc"
	settings.notif_cadence_hours = 12
	settings.notif_event_log_size = 200
	settings.obs_metrics_public = False
	try:
		yield
	finally:
		for name, value in original.items():
			setattr(settings, name, value)


@pytest.fixture
def fake_ledger():
	return FakeLedger()


@pytest.fixture
def fake_gateway():
	return FakeGateway()


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
