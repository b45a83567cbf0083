"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hexfeed.api import feed, geocode, ops, search
from hexfeed.api.errors import install_error_handlers
from hexfeed.infra import postgres
from hexfeed.infra.redis import close_redis
from hexfeed.infra.store import PostgresDocumentStore, get_document_store
from hexfeed.obs import init as obs_init
from hexfeed.obs import tracing
from hexfeed.settings import settings

logger = logging.getLogger(__name__)

LOCALHOST_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?$"


@asynccontextmanager
async def lifespan(app: FastAPI):
	store = get_document_store()
	if isinstance(store, PostgresDocumentStore):
		await postgres.init_pool()
		await store.ensure_schema()
	logger.info("app.startup", extra={"store": settings.store_backend, "env": settings.environment})
	try:
		yield
	finally:
		await postgres.close_pool()
		await close_redis()
		tracing.shutdown_tracing()


app = FastAPI(title="hexfeed", lifespan=lifespan)
install_error_handlers(app)

app.add_middleware(
	CORSMiddleware,
	allow_origins=list(settings.cors_allow_origins),
	allow_origin_regex=LOCALHOST_ORIGIN_REGEX if settings.cors_allow_localhost else None,
	allow_credentials=False,
	allow_methods=["GET", "OPTIONS"],
	allow_headers=["*"],
	max_age=600,
)
obs_init(app)

app.include_router(feed.router)
app.include_router(search.router)
app.include_router(geocode.router)
app.include_router(ops.router)
