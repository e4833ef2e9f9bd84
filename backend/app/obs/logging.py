"""JSON logging for the memorial discovery API.

Every record becomes one JSON object. Request-scoped fields (request id, route,
caller) come from a context variable bound by the HTTP middleware, and ``extra``
fields are sanitised before they are written: credentials and caller
coordinates are redacted, long values are clipped.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Optional

from app.settings import settings

ROOT_LOGGER = "memorials"


@dataclass(frozen=True, slots=True)
class RequestContext:
	request_id: Optional[str] = None
	route: Optional[str] = None
	user_id: Optional[str] = None
	session_id: Optional[str] = None
	ip: Optional[str] = None


_CONTEXT: ContextVar[RequestContext] = ContextVar("memorials_request_context", default=RequestContext())

# Substrings of field names whose values never reach the log stream.
_REDACT_PARTS = ("token", "secret", "authorization", "password", "email", "latitude", "longitude", "coordinates")
# Matched exactly so fields like "latency_ms" or "along" survive.
_REDACT_KEYS = frozenset({"lat", "lng", "lon", "location", "origin"})

MAX_STRING = 256
MAX_ITEMS = 10

# Anything already on a bare LogRecord is logging plumbing, not an ``extra`` field.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Overlay non-empty ``fields`` on the current request context."""

	current = _CONTEXT.get()
	updates = {key: value for key, value in fields.items() if value is not None}
	return _CONTEXT.set(replace(current, **updates))


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().request_id


def _redacted(key: str) -> bool:
	lowered = key.lower()
	return lowered in _REDACT_KEYS or any(part in lowered for part in _REDACT_PARTS)


def clean(key: str, value: Any) -> Any:
	if _redacted(key):
		return "[redacted]"
	if isinstance(value, str):
		return value if len(value) <= MAX_STRING else value[:MAX_STRING] + "…"
	if isinstance(value, dict):
		items = list(value.items())
		cleaned = {str(k): clean(str(k), v) for k, v in items[:MAX_ITEMS]}
		if len(items) > MAX_ITEMS:
			cleaned["…"] = f"+{len(items) - MAX_ITEMS} keys"
		return cleaned
	if isinstance(value, (list, tuple, set)):
		values = list(value)
		cleaned_list = [clean(key, item) for item in values[:MAX_ITEMS]]
		if len(values) > MAX_ITEMS:
			cleaned_list.append("…")
		return cleaned_list
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update({key: value for key, value in asdict(_CONTEXT.get()).items() if value})
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key not in _RECORD_ATTRS and key not in payload:
				payload[key] = clean(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a ``LOG_SAMPLING_RATE_INFO`` share of info records; everything else passes."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info
		return rate >= 1.0 or random.random() < max(0.0, rate)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or ROOT_LOGGER)
