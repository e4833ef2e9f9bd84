"""REST endpoints for memorial search and type-ahead suggestions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException

from app.domain.search import policy, schemas
from app.domain.search.service import SearchService
from app.domain.search.suggestions import SuggestionEngine
from app.infra.auth import Actor, get_actor
from app.infra.rate_limit import GENERAL, rate_limited
from app.infra.store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"], dependencies=[Depends(rate_limited(GENERAL))])

_service = SearchService()
_suggestions = SuggestionEngine()

# Raised through to the app-level handlers unchanged.
_PASSTHROUGH = (policy.SearchPolicyError, StoreError, HTTPException)


def _internal_error(detail: str) -> HTTPException:
	logger.exception(detail)
	return HTTPException(status_code=500, detail=detail)


@router.get("/search", response_model=schemas.SearchResponse)
async def search_endpoint(
	params: schemas.SearchParams = Depends(),
	actor: Actor = Depends(get_actor),
) -> schemas.SearchResponse:
	filters = params.to_filters()
	try:
		if params.advanced:
			return await _service.advanced_search(params.q, filters, params.options(), actor=actor)
		return await _service.search_memorials(params.q, filters, actor=actor)
	except _PASSTHROUGH:
		raise
	except Exception as exc:
		raise _internal_error("search_failed") from exc


@router.post("/search", response_model=schemas.SearchResponse)
async def search_body_endpoint(
	payload: schemas.SearchBody = Body(...),
	actor: Actor = Depends(get_actor),
) -> schemas.SearchResponse:
	query = policy.require_query(payload.query)
	try:
		if payload.advanced:
			return await _service.advanced_search(query, payload.filters, payload.options, actor=actor)
		return await _service.search_memorials(query, payload.filters, actor=actor)
	except _PASSTHROUGH:
		raise
	except Exception as exc:
		raise _internal_error("search_failed") from exc


@router.get("/search/suggestions", response_model=schemas.SuggestionsResponse)
async def suggestions_endpoint(
	query: schemas.SuggestionsQuery = Depends(),
) -> schemas.SuggestionsResponse:
	try:
		items = await _suggestions.suggest(query.q)
	except _PASSTHROUGH:
		raise
	except Exception as exc:
		raise _internal_error("suggestions_failed") from exc
	return schemas.SuggestionsResponse(suggestions=items)
