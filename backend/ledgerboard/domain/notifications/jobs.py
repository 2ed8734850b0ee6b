"""Entry point for the periodic reminder trigger."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ledgerboard.domain.notifications.service import NotificationService

_service = NotificationService()


async def dispatch_notifications(*, batch_limit: Optional[int] = None) -> Dict[str, Any]:
	result = await _service.dispatch_due(batch_limit=batch_limit)
	return result.to_mapping()
