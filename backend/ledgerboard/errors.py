"""Error taxonomy shared by the indexer, finalizer and dispatcher."""

from __future__ import annotations


class LedgerboardError(Exception):
	"""Base class for service errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class ConfigurationError(LedgerboardError):
	"""A required endpoint or address is missing; nothing was attempted."""

	reason = "configuration"


class UpstreamUnavailable(LedgerboardError):
	"""Network failure, non-2xx transport error or deadline expiry. Retryable."""

	reason = "upstream_unavailable"


class LedgerUnavailable(UpstreamUnavailable):
	reason = "ledger_unavailable"


class GatewayUnavailable(UpstreamUnavailable):
	reason = "gateway_unavailable"


class DataAnomaly(LedgerboardError):
	"""Upstream answered successfully with a payload we do not recognise."""

	reason = "data_anomaly"
