"""HTTP client for the mini-app push notification gateway."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence

import httpx

from ledgerboard.errors import GatewayUnavailable


@dataclass(frozen=True)
class PushRequest:
	notification_id: str
	title: str
	body: str
	target_url: str
	tokens: Sequence[str]

	def to_payload(self) -> dict[str, Any]:
		return {
			"notificationId": self.notification_id,
			"title": self.title,
			"body": self.body,
			"targetUrl": self.target_url,
			"tokens": list(self.tokens),
		}


@dataclass(frozen=True)
class GatewayResponse:
	"""Raw gateway answer. Classification happens in the dispatcher."""

	status_code: int
	payload: Any = None
	successful_tokens: tuple[str, ...] = field(default=())
	invalid_tokens: tuple[str, ...] = field(default=())
	rate_limited_tokens: tuple[str, ...] = field(default=())
	recognised: bool = False

	@property
	def ok(self) -> bool:
		return 200 <= self.status_code < 300


class PushGateway(Protocol):
	async def send(self, url: str, request: PushRequest) -> GatewayResponse:
		...


def _token_list(container: Mapping[str, Any], *names: str) -> Optional[tuple[str, ...]]:
	for name in names:
		value = container.get(name)
		if isinstance(value, list):
			return tuple(str(item) for item in value)
	return None


def parse_gateway_payload(status_code: int, payload: Any) -> GatewayResponse:
	"""Unwrap `result`, `data.result` or the top level and extract the three token lists."""
	result: Any = payload
	if isinstance(payload, dict):
		if isinstance(payload.get("result"), dict):
			result = payload["result"]
		elif isinstance(payload.get("data"), dict) and isinstance(payload["data"].get("result"), dict):
			result = payload["data"]["result"]
	if not isinstance(result, dict):
		return GatewayResponse(status_code=status_code, payload=payload)
	successful = _token_list(result, "successfulTokens")
	invalid = _token_list(result, "invalidTokens")
	rate_limited = _token_list(result, "rateLimitedTokens", "rateLimited")
	recognised = any(item is not None for item in (successful, invalid, rate_limited))
	return GatewayResponse(
		status_code=status_code,
		payload=payload,
		successful_tokens=successful or (),
		invalid_tokens=invalid or (),
		rate_limited_tokens=rate_limited or (),
		recognised=recognised,
	)


@dataclass
class HttpPushGateway(PushGateway):
	"""Posts notification batches with a hard per-call deadline."""

	http: httpx.AsyncClient
	timeout: float = 10.0

	async def send(self, url: str, request: PushRequest) -> GatewayResponse:
		try:
			response = await asyncio.wait_for(
				self.http.post(
					url,
					json=request.to_payload(),
					headers={"Accept": "application/json"},
					timeout=self.timeout,
				),
				timeout=self.timeout,
			)
		except asyncio.TimeoutError as exc:
			raise GatewayUnavailable("gateway_timeout") from exc
		except httpx.InvalidURL as exc:
			raise GatewayUnavailable("gateway_invalid_url") from exc
		except httpx.HTTPError as exc:
			raise GatewayUnavailable(f"gateway_transport:{type(exc).__name__}") from exc
		try:
			payload = response.json() if response.content else None
		except ValueError:
			payload = {"raw": response.text[:512]}
		return parse_gateway_payload(response.status_code, payload)


__all__ = ["GatewayResponse", "HttpPushGateway", "PushGateway", "PushRequest", "parse_gateway_payload"]
