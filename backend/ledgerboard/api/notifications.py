"""Host webhook and admin tooling for reminder subscriptions."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ledgerboard.api.deps import require_admin
from ledgerboard.domain.notifications.schemas import (
	NotificationStatusSchema,
	RescheduleResultSchema,
	SendTestResultSchema,
	WebhookAckSchema,
	WebhookEventSchema,
)
from ledgerboard.domain.notifications.service import NotificationService

router = APIRouter(tags=["notifications"])
admin_router = APIRouter(prefix="/admin/notifs", tags=["notifications"], dependencies=[Depends(require_admin)])

_service = NotificationService()


def get_service() -> NotificationService:
	return _service


@router.post("/webhook", response_model=WebhookAckSchema, response_model_by_alias=True)
async def webhook_endpoint(
	payload: WebhookEventSchema,
	service: NotificationService = Depends(get_service),
) -> WebhookAckSchema:
	return await service.handle_webhook_event(payload)


@router.get("/webhook")
async def webhook_probe() -> Dict[str, bool]:
	return {"ok": True}


@admin_router.get("/status", response_model=NotificationStatusSchema, response_model_by_alias=True)
async def status_endpoint(service: NotificationService = Depends(get_service)) -> NotificationStatusSchema:
	return await service.status()


@admin_router.get("/events")
async def events_endpoint(
	limit: int = Query(default=50, ge=1, le=200),
	service: NotificationService = Depends(get_service),
) -> Dict[str, Any]:
	return await service.recent_events(limit=limit)


@admin_router.get("/reschedule", response_model=RescheduleResultSchema, response_model_by_alias=True)
async def reschedule_endpoint(
	hours: int = Query(...),
	member: Optional[str] = Query(default=None),
	service: NotificationService = Depends(get_service),
) -> RescheduleResultSchema:
	try:
		return await service.reschedule_all(hours, member=member)
	except ValueError as exc:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@admin_router.get("/send-test", response_model=SendTestResultSchema, response_model_by_alias=True)
async def send_test_endpoint(
	fid: Optional[int] = Query(default=None),
	app_fid: Optional[int] = Query(default=None, alias="appFid"),
	service: NotificationService = Depends(get_service),
) -> SendTestResultSchema:
	member = await service.resolve_member(fid=fid, app_fid=app_fid)
	if member is None:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail="no_registered_users")
	result = await service.send_test(member)
	if result is None:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail="no_record_for_member")
	return result
