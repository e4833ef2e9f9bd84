"""Probe and scrape endpoints for the deployment platform."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.obs import health
from app.settings import settings

router = APIRouter(tags=["ops"])


def presented_token(request: Request) -> Optional[str]:
	"""``X-Admin-Token`` wins over an ``Authorization: Bearer`` header."""

	token = request.headers.get("X-Admin-Token")
	if token:
		return token
	scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
	if scheme.lower() == "bearer" and credentials.strip():
		return credentials.strip()
	return None


async def metrics_guard(request: Request) -> None:
	if settings.obs_metrics_public:
		return
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	provided = presented_token(request)
	if provided is None or not secrets.compare_digest(provided.encode(), expected.encode()):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def ready() -> JSONResponse:
	code, body = await health.readiness()
	return JSONResponse(body, status_code=code)


@router.get("/metrics", dependencies=[Depends(metrics_guard)])
async def scrape() -> Response:
	return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
