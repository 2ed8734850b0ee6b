"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from ledgerboard.infra.redis import redis_client
from ledgerboard.obs import metrics
from ledgerboard.settings import settings

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.5) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		latency = perf_counter() - start
		metrics.mark_redis(True, latency_seconds=latency)
		return {"ok": True, "latency_ms": round(latency * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_redis(False)
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


def _config_status() -> Dict[str, Any]:
	missing = []
	if not settings.ledger_rpc_url:
		missing.append("LEDGER_RPC_URL")
	if not settings.score_contract_address:
		missing.append("SCORE_CONTRACT_ADDRESS")
	return {"ok": not missing, "missing": missing}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_status()
	config_state = _config_status()
	ok = bool(redis_state.get("ok")) and bool(config_state.get("ok"))
	status_code = 200 if ok else 503
	return (
		status_code,
		{
			"status": "ok" if ok else "degraded",
			"checks": {
				"redis": redis_state,
				"config": config_state,
			},
		},
	)
