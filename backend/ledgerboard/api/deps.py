"""Shared guards for the trigger and admin surfaces."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Query, status

from ledgerboard.settings import settings


def _matches(provided: Optional[str], expected: str) -> bool:
	if not provided:
		return False
	return hmac.compare_digest(provided.encode(), expected.encode())


def _bearer(authorization: Optional[str]) -> Optional[str]:
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1].strip()
	return None


async def require_cron(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> None:
	"""Cron routes are open when no secret is configured, Bearer-protected otherwise."""
	secret = settings.cron_secret
	if not secret:
		return
	if not _matches(_bearer(authorization), secret):
		raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


async def require_admin(
	x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
	key: Optional[str] = Query(default=None),
) -> None:
	expected = settings.admin_key
	if not expected:
		# Fail closed: no key configured means no admin access.
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_key_not_configured")
	if not _matches(x_admin_key or key, expected):
		raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


async def require_metrics_access(
	x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
	key: Optional[str] = Query(default=None),
) -> None:
	if settings.obs_metrics_public:
		return
	await require_admin(x_admin_key=x_admin_key, key=key)
