"""Observability wiring: JSON logs plus the per-request middleware."""

from __future__ import annotations

from fastapi import FastAPI

from app.obs import logging as obs_logging
from app.obs import middleware
from app.settings import settings


def init(app: FastAPI) -> None:
	"""Install request instrumentation, switching to JSON logs when ``OBS_ENABLED``.

	The middleware goes in either way since it also assigns ``X-Request-Id``.
	"""

	if settings.obs_enabled:
		obs_logging.configure_logging()
	middleware.install(app, enabled=settings.obs_enabled)


__all__ = ["init"]
