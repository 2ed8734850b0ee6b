"""Read-only JSON-RPC client for the score contract's event log."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence

import httpx
from eth_utils import keccak

from ledgerboard.errors import ConfigurationError, LedgerUnavailable
from ledgerboard.settings import settings

SCORE_SUBMITTED_SIGNATURE = "ScoreSubmitted(address,uint32,uint32,uint64)"
SCORE_SUBMITTED_TOPIC = "0x" + keccak(text=SCORE_SUBMITTED_SIGNATURE).hex()

_WORD = 64

_LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
	"""One decoded ScoreSubmitted log."""

	subject: str
	reported_score: int
	best_score: int
	block_height: int
	block_timestamp: Optional[int] = None
	submission_index: int = 0
	tx_hash: Optional[str] = None
	log_index: int = 0


@dataclass(frozen=True)
class TransactionReceipt:
	tx_hash: str
	status: int
	block_height: int
	logs: list[dict[str, Any]] = field(default_factory=list)

	@property
	def succeeded(self) -> bool:
		return self.status == 1


class LedgerClient(Protocol):
	"""Interface the indexer needs from the ledger."""

	async def get_head(self) -> int:
		...

	async def get_logs(self, address: str, topic: str, from_height: int, to_height: int) -> list[LedgerEvent]:
		...

	async def get_block_timestamp(self, height: int) -> int:
		...

	async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
		...


def hex_to_int(value: Any) -> int:
	if value is None:
		return 0
	if isinstance(value, int):
		return value
	text = str(value)
	return int(text, 16) if text.startswith(("0x", "0X")) else int(text)


def normalize_address(address: Optional[str]) -> str:
	return (address or "").lower()


def decode_score_submitted(log: Mapping[str, Any]) -> Optional[LedgerEvent]:
	"""Decode a raw eth_getLogs entry, or None when it is not a settled, well-formed ScoreSubmitted log."""
	topics: Sequence[str] = log.get("topics") or []
	if len(topics) < 2 or str(topics[0]).lower() != SCORE_SUBMITTED_TOPIC:
		return None
	if log.get("removed") or log.get("blockNumber") is None:
		# reorged out, or still pending
		return None
	data = str(log.get("data") or "")
	if data.startswith("0x"):
		data = data[2:]
	if len(data) < 3 * _WORD:
		return None
	# topic[1] is the indexed player address, left-padded to 32 bytes
	subject = normalize_address("0x" + str(topics[1])[-40:])
	raw_ts = log.get("blockTimestamp")
	try:
		return LedgerEvent(
			subject=subject,
			reported_score=int(data[0:_WORD], 16),
			best_score=int(data[_WORD : 2 * _WORD], 16),
			block_height=hex_to_int(log["blockNumber"]),
			block_timestamp=hex_to_int(raw_ts) if raw_ts is not None else None,
			submission_index=int(data[2 * _WORD : 3 * _WORD], 16),
			tx_hash=(log.get("transactionHash") or None),
			log_index=hex_to_int(log.get("logIndex")),
		)
	except ValueError:
		_LOG.warning(
			"ledger.log_malformed",
			extra={"tx_hash": log.get("transactionHash"), "reason": "non_hex_field"},
		)
		return None


@dataclass
class JsonRpcLedgerClient(LedgerClient):
	"""Ledger client speaking JSON-RPC 2.0 over httpx."""

	http: httpx.AsyncClient
	rpc_url: str
	timeout: float = 10.0

	async def _call(self, method: str, params: list[Any]) -> Any:
		payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
		try:
			response = await asyncio.wait_for(
				self.http.post(self.rpc_url, json=payload, timeout=self.timeout),
				timeout=self.timeout,
			)
			response.raise_for_status()
			data = response.json()
		except asyncio.TimeoutError as exc:
			raise LedgerUnavailable(f"ledger_timeout:{method}") from exc
		except (httpx.HTTPError, ValueError) as exc:
			raise LedgerUnavailable(f"ledger_transport:{method}") from exc
		if not isinstance(data, dict):
			raise LedgerUnavailable(f"ledger_bad_payload:{method}")
		if data.get("error"):
			raise LedgerUnavailable(f"ledger_rpc_error:{method}:{data['error']}")
		return data.get("result")

	async def get_head(self) -> int:
		return hex_to_int(await self._call("eth_blockNumber", []))

	async def get_logs(self, address: str, topic: str, from_height: int, to_height: int) -> list[LedgerEvent]:
		raw = await self._call(
			"eth_getLogs",
			[
				{
					"address": address,
					"topics": [topic],
					"fromBlock": hex(from_height),
					"toBlock": hex(to_height),
				}
			],
		)
		events: list[LedgerEvent] = []
		for log in raw or []:
			event = decode_score_submitted(log)
			if event is not None:
				events.append(event)
		events.sort(key=lambda item: (item.block_height, item.log_index))
		return events

	async def get_block_timestamp(self, height: int) -> int:
		block = await self._call("eth_getBlockByNumber", [hex(height), False])
		if not block or block.get("timestamp") is None:
			raise LedgerUnavailable(f"block_not_found:{height}")
		return hex_to_int(block["timestamp"])

	async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
		receipt = await self._call("eth_getTransactionReceipt", [tx_hash])
		if not receipt or receipt.get("status") is None:
			return None
		return TransactionReceipt(
			tx_hash=str(receipt.get("transactionHash") or tx_hash).lower(),
			status=hex_to_int(receipt.get("status")),
			block_height=hex_to_int(receipt.get("blockNumber")),
			logs=list(receipt.get("logs") or []),
		)


def require_contract_address() -> str:
	if not settings.score_contract_address:
		raise ConfigurationError("missing SCORE_CONTRACT_ADDRESS")
	return normalize_address(settings.score_contract_address)


def build_ledger_client(http: httpx.AsyncClient) -> JsonRpcLedgerClient:
	if not settings.ledger_rpc_url:
		raise ConfigurationError("missing LEDGER_RPC_URL")
	return JsonRpcLedgerClient(http=http, rpc_url=settings.ledger_rpc_url, timeout=settings.ledger_timeout_seconds)


__all__ = [
	"JsonRpcLedgerClient",
	"LedgerClient",
	"LedgerEvent",
	"SCORE_SUBMITTED_TOPIC",
	"TransactionReceipt",
	"build_ledger_client",
	"decode_score_submitted",
	"normalize_address",
	"require_contract_address",
]
