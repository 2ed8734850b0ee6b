"""Shared httpx client for outbound calls to the ledger and push gateway."""

from __future__ import annotations

from typing import Optional

import httpx

from ledgerboard.settings import settings

_client: Optional[httpx.AsyncClient] = None


def init_client() -> httpx.AsyncClient:
	global _client
	if _client is None:
		# Per-call deadlines are applied by the callers; this is only the ceiling.
		timeout = max(settings.ledger_timeout_seconds, settings.push_timeout_seconds)
		_client = httpx.AsyncClient(
			timeout=httpx.Timeout(timeout, connect=min(5.0, timeout)),
			limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
			headers={"User-Agent": f"{settings.service_name}/{settings.git_commit}"},
		)
	return _client


def set_client(client: Optional[httpx.AsyncClient]) -> None:
	global _client
	_client = client


def get_client() -> httpx.AsyncClient:
	return init_client()


async def close_client() -> None:
	global _client
	if _client is not None:
		await _client.aclose()
		_client = None
