"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from hexfeed.obs import logging as obs_logging
from hexfeed.obs import middleware, tracing
from hexfeed.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	global _initialised
	if _initialised:
		return
	if settings.obs_enabled:
		obs_logging.configure_logging()
		tracing.init_tracing(app)
	# request ids are always issued; metrics and access logs follow obs_enabled
	middleware.install(app, enabled=settings.obs_enabled)
	_initialised = True


__all__ = ["init"]
