"""Pydantic schemas for the host webhook and admin notification routes."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationDetailsSchema(_CamelModel):
	token: str = Field(..., min_length=1)
	url: AnyHttpUrl


class WebhookEventBodySchema(_CamelModel):
	event: str
	notification_details: Optional[NotificationDetailsSchema] = None


class WebhookEventSchema(_CamelModel):
	"""Host event after envelope verification: who, which app, what happened."""

	fid: int
	app_fid: int
	event: WebhookEventBodySchema


class WebhookAckSchema(_CamelModel):
	ok: bool = True
	action: str


class SoonestDueSchema(_CamelModel):
	member: str
	next_send_at: int
	in_seconds: int


class NotificationStatusSchema(_CamelModel):
	ok: bool = True
	now: int
	registered: int
	due_now: int
	cadence_hours: int
	soonest: Optional[SoonestDueSchema] = None


class RescheduleResultSchema(_CamelModel):
	ok: bool = True
	updated: int
	missing: int
	total: int
	hours: int


class SendTestResultSchema(_CamelModel):
	ok: bool
	member: str
	status: int
	parsed: dict[str, Any] = Field(default_factory=dict)
	raw: Any = None
