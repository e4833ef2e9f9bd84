"""Caller resolution for FastAPI endpoints.

Authentication and session issuance live outside this service; requests arrive
with the caller identity already resolved into headers by the gateway.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import ulid
from fastapi import Header, Request


@dataclass(slots=True)
class Actor:
	session_id: str
	user_id: Optional[str] = None
	ip_address: Optional[str] = None
	user_agent: Optional[str] = None


def _client_ip(request: Request) -> Optional[str]:
	forwarded = request.headers.get("x-forwarded-for")
	if forwarded:
		return forwarded.split(",")[0].strip() or None
	return request.client.host if request.client else None


async def get_actor(
	request: Request,
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_session_id: Optional[str] = Header(default=None, alias="X-Session-Id"),
) -> Actor:
	"""Resolve the calling actor; anonymous callers get a fresh session id."""
	user_id = (x_user_id or "").strip() or None
	session_id = (x_session_id or "").strip() or ulid.new().str
	return Actor(
		session_id=session_id,
		user_id=user_id,
		ip_address=_client_ip(request),
		user_agent=request.headers.get("user-agent"),
	)
