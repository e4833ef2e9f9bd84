"""REST endpoints for the nearby and discovery obituary feeds."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.domain.obituaries import schemas
from app.domain.obituaries.service import ObituaryService
from app.domain.search.policy import SearchPolicyError
from app.infra.rate_limit import GENERAL, rate_limited
from app.infra.store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/obituaries", tags=["obituaries"], dependencies=[Depends(rate_limited(GENERAL))])

_service = ObituaryService()


@router.get("", response_model=schemas.ObituaryResponse)
async def nearby_obituaries(query: schemas.ObituaryQuery = Depends()) -> schemas.ObituaryResponse:
	try:
		return await _service.nearby(query)
	except (SearchPolicyError, StoreError):
		raise
	except Exception as exc:
		logger.exception("obituaries_failed")
		raise HTTPException(status_code=500, detail="obituaries_failed") from exc


@router.get("/feed", response_model=schemas.ObituaryFeedResponse)
async def obituary_feed(query: schemas.ObituaryFeedQuery = Depends()) -> schemas.ObituaryFeedResponse:
	try:
		return await _service.discovery_feed(query)
	except (SearchPolicyError, StoreError):
		raise
	except Exception as exc:
		logger.exception("obituaries_failed")
		raise HTTPException(status_code=500, detail="obituaries_failed") from exc
