"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledgerboard.api import cron, leaderboard, notifications, ops
from ledgerboard.api.errors import install_error_handlers
from ledgerboard.infra import http
from ledgerboard.obs import init as obs_init
from ledgerboard.settings import settings

_LOG = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	http.init_client()
	_LOG.info(
		"service.startup",
		extra={"environment": settings.environment, "chain_id": settings.chain_id, "cadence_hours": settings.notif_cadence_hours},
	)
	try:
		yield
	finally:
		await http.close_client()


app = FastAPI(title="Ledgerboard", lifespan=lifespan)
install_error_handlers(app)

allow_origins = [settings.app_url.rstrip("/")]
if settings.is_dev():
	allow_origins.extend(["http://localhost:3000", "http://127.0.0.1:3000"])

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=False,
	allow_methods=["GET", "POST"],
	allow_headers=["*"],
)

obs_init(app)

app.include_router(cron.router)
app.include_router(leaderboard.router)
app.include_router(notifications.router)
app.include_router(notifications.admin_router)
app.include_router(ops.router)
