"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import obituaries, ops, search
from app.api.errors import install_error_handlers
from app.domain.analytics import api as analytics_api
from app.domain.search.search_log import get_search_logger
from app.infra import postgres_store
from app.infra.redis import redis_client
from app.infra.store import get_store, set_store
from app.obs import init as obs_init
from app.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	if settings.content_store_backend == "postgres":
		set_store(await postgres_store.connect())
	logger.info("content store backend=%s", get_store().name)
	try:
		yield
	finally:
		# let in-flight search log writes land before the store goes away
		await get_search_logger().drain()
		await get_store().close()
		set_store(None)
		await redis_client.close()


app = FastAPI(title="Memorial Discovery API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
allow_credentials = "*" not in allow_origins

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=allow_credentials,
	allow_methods=["GET", "POST", "OPTIONS"],
	allow_headers=["*"],
)

obs_init(app)

app.include_router(search.router)
app.include_router(obituaries.router)
app.include_router(analytics_api.router)
app.include_router(ops.router)
