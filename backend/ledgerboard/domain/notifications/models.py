"""Domain models for reminder subscriptions and delivery outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from ledgerboard.settings import ALLOWED_CADENCE_HOURS, settings


class DeliveryOutcome(str, Enum):
	SENT = "sent"
	INVALID = "invalid"
	RATE_LIMITED = "rate_limited"
	ERROR = "error"


def member_key(fid: int, app_fid: int) -> str:
	return f"{fid}:{app_fid}"


def parse_member(member: str) -> Optional[tuple[int, int]]:
	"""Split a due-index member back into (fid, app_fid); None when malformed."""
	parts = str(member).split(":")
	if len(parts) != 2:
		return None
	try:
		return int(parts[0]), int(parts[1])
	except ValueError:
		return None


def normalise_cadence(value: Any) -> int:
	try:
		hours = int(value)
	except (TypeError, ValueError):
		return settings.notif_cadence_hours
	return hours if hours in ALLOWED_CADENCE_HOURS else settings.notif_cadence_hours


def _opt_int(value: Any) -> Optional[int]:
	if value is None or isinstance(value, bool):
		return None
	try:
		return int(value)
	except (TypeError, ValueError):
		return None


@dataclass(slots=True)
class Subscription:
	"""Per (fid, app_fid) delivery record; `next_send_at` mirrors the due-index score."""

	fid: int
	app_fid: int
	url: str
	token: str
	cadence_hours: int
	next_send_at: int
	last_sent_at: Optional[int] = None
	invalid_streak: int = 0
	last_attempt_at: Optional[int] = None
	last_result: Optional[str] = None
	last_response: Optional[dict[str, Any]] = None
	last_error: Optional[str] = None
	created_at: Optional[int] = None
	updated_at: Optional[int] = None

	@property
	def member(self) -> str:
		return member_key(self.fid, self.app_fid)

	@property
	def cadence_seconds(self) -> int:
		return self.cadence_hours * 3600

	def to_mapping(self) -> dict[str, Any]:
		return {
			"fid": self.fid,
			"appFid": self.app_fid,
			"url": self.url,
			"token": self.token,
			"cadenceHours": self.cadence_hours,
			"nextSendAt": self.next_send_at,
			"lastSentAt": self.last_sent_at,
			"invalidStreak": self.invalid_streak,
			"lastAttemptAt": self.last_attempt_at,
			"lastResult": self.last_result,
			"lastResponse": self.last_response,
			"lastError": self.last_error,
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}

	@classmethod
	def from_mapping(cls, mapping: Any) -> Optional["Subscription"]:
		"""Normalise a stored record; anything structurally broken reads as absent.

		Older records predate the bookkeeping fields and may carry a cadence that is
		no longer offered, so both are filled in here rather than at every caller.
		"""
		if not isinstance(mapping, Mapping):
			return None
		fid = _opt_int(mapping.get("fid"))
		app_fid = _opt_int(mapping.get("appFid"))
		next_send_at = _opt_int(mapping.get("nextSendAt"))
		url = mapping.get("url")
		token = mapping.get("token")
		if fid is None or app_fid is None or next_send_at is None:
			return None
		if not isinstance(url, str) or not isinstance(token, str) or not url or not token:
			return None
		last_response = mapping.get("lastResponse")
		return cls(
			fid=fid,
			app_fid=app_fid,
			url=url,
			token=token,
			cadence_hours=normalise_cadence(mapping.get("cadenceHours")),
			next_send_at=next_send_at,
			last_sent_at=_opt_int(mapping.get("lastSentAt")),
			invalid_streak=max(0, _opt_int(mapping.get("invalidStreak")) or 0),
			last_attempt_at=_opt_int(mapping.get("lastAttemptAt")),
			last_result=mapping.get("lastResult") if isinstance(mapping.get("lastResult"), str) else None,
			last_response=last_response if isinstance(last_response, dict) else None,
			last_error=mapping.get("lastError") if isinstance(mapping.get("lastError"), str) else None,
			created_at=_opt_int(mapping.get("createdAt")),
			updated_at=_opt_int(mapping.get("updatedAt")),
		)


@dataclass(slots=True)
class DispatchResult:
	"""Per-outcome counts for one dispatcher run."""

	due: int = 0
	sent: int = 0
	invalid: int = 0
	invalid_disabled: int = 0
	rate_limited: int = 0
	errors: int = 0
	stale: int = 0
	skipped: int = 0

	def count(self, outcome: DeliveryOutcome) -> None:
		if outcome is DeliveryOutcome.SENT:
			self.sent += 1
		elif outcome is DeliveryOutcome.INVALID:
			self.invalid += 1
		elif outcome is DeliveryOutcome.RATE_LIMITED:
			self.rate_limited += 1
		else:
			self.errors += 1

	def to_mapping(self) -> dict[str, Any]:
		return {
			"ok": True,
			"due": self.due,
			"sent": self.sent,
			"invalid": self.invalid,
			"invalidDisabled": self.invalid_disabled,
			"rateLimited": self.rate_limited,
			"errors": self.errors,
			"stale": self.stale,
			"skipped": self.skipped,
		}


__all__ = [
	"DeliveryOutcome",
	"DispatchResult",
	"Subscription",
	"member_key",
	"normalise_cadence",
	"parse_member",
]
