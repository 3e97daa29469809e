"""JSON logging with per-connection context.

Socket handlers bind the user id, socket id and route of the nav context they
serve. Tasks spawned while a context is bound (session changes, channel readers,
refreshes) copy it, so coordinator logs carry the owner they belong to.
"""

from __future__ import annotations

import json
import logging
import random
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional

from offernav.settings import settings

_CONTEXT_FIELDS = ("user_id", "sid", "route")
_LOG_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("offernav_log_context", default={})

_LOGGER_NAME = "offernav"

_REDACTED_KEYS = ("token", "secret", "authorization", "password")
_MAX_TEXT = 256

# attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def bind_context(
	*,
	user_id: Optional[str] = None,
	sid: Optional[str] = None,
	route: Optional[str] = None,
) -> Token:
	"""Layer fields over the current log context; pass the token to ``reset_context``."""
	fields = dict(_LOG_CONTEXT.get())
	for key, value in zip(_CONTEXT_FIELDS, (user_id, sid, route)):
		if value is not None:
			fields[key] = str(value)
	return _LOG_CONTEXT.set(fields)


def reset_context(token: Token) -> None:
	_LOG_CONTEXT.reset(token)


@contextmanager
def log_context(**fields: Optional[str]) -> Iterator[None]:
	token = bind_context(**fields)
	try:
		yield
	finally:
		reset_context(token)


def current_context() -> Dict[str, str]:
	return dict(_LOG_CONTEXT.get())


def _scrub(key: str, value: Any) -> Any:
	if any(word in key.lower() for word in _REDACTED_KEYS):
		return "[redacted]"
	if isinstance(value, str):
		return value if len(value) <= _MAX_TEXT else value[:_MAX_TEXT] + "…"
	if isinstance(value, Mapping):
		return {str(k): _scrub(str(k), v) for k, v in value.items()}
	if isinstance(value, (list, tuple, set)):
		return [_scrub(key, item) for item in value]
	if isinstance(value, (int, float, bool)) or value is None:
		return value
	return str(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: service fields, bound context, then extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_LOG_CONTEXT.get())
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key in _RECORD_ATTRS or key.startswith("_"):
				continue
			payload[key] = _scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a fraction of info records; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)
