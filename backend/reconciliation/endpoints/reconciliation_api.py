"""
Reconciliation API Endpoints

REST API for the matching engine:
- POST /api/reconciliation/match - Match statement transactions against book transactions
- GET /api/reconciliation/options - Default matching options
- GET /api/reconciliation/status - Module status
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from config import Settings, get_settings
from middleware.internal_auth import InternalService, require_internal_service
from reconciliation.engine import matching_engine
from reconciliation.errors import InvalidInputError, summarize_validation_errors
from reconciliation.matching_rules.similarity import available_metrics
from reconciliation.models import MatchCriteria, MatchOptions
from sentry_integration import set_tag
from utils.api_errors import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


# ==================== Request Models ====================

class MatchRequest(BaseModel):
    """
    Request to match one reconciliation session.

    Transactions are validated by the engine, not here, so a single
    malformed entry is reported as unmatched instead of failing the request.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: Optional[str] = Field(default=None, description="Caller's reconciliation session ID")
    statement_transactions: List[Any] = Field(..., description="Transactions from the bank statement")
    book_transactions: List[Any] = Field(..., description="Transactions from the ledger")
    options: Optional[Dict[str, Any]] = Field(default=None, description="Overrides for the default match options")


def _resolve_options(settings: Settings, overrides: Optional[Dict[str, Any]]) -> MatchOptions:
    try:
        return MatchOptions.from_settings(settings, **(overrides or {}))
    except ValidationError as e:
        raise InvalidInputError(
            "Invalid match options",
            details={"errors": summarize_validation_errors(e.errors())}
        )


# ==================== Endpoints ====================

@router.get("/status", summary="Module status")
async def get_module_status(settings: Settings = Depends(get_settings)):
    """
    Get reconciliation module status.

    Returns available criteria, similarity metrics, request limits
    and the default match options.
    """
    return success_response({
        "module": "reconciliation",
        "status": "operational",
        "version": settings.API_VERSION,
        "features": {
            "exact_matching": True,
            "amount_date_matching": True,
            "fuzzy_description_matching": True,
            "custom_rules": True,
        },
        "criteria": [c.value for c in MatchCriteria],
        "similarity_metrics": available_metrics(),
        "max_transactions_per_side": settings.MATCH_MAX_TRANSACTIONS_PER_SIDE,
        "default_options": _resolve_options(settings, None).model_dump(mode="json", by_alias=True),
    })


@router.get("/options", summary="Default match options")
async def get_default_options(settings: Settings = Depends(get_settings)):
    """
    Get the match options applied when a request does not override them.
    """
    options = _resolve_options(settings, None)
    return success_response(options.model_dump(mode="json", by_alias=True))


@router.post("/match", summary="Match transactions")
async def match_transactions(
    request: MatchRequest,
    settings: Settings = Depends(get_settings),
    service: InternalService = Depends(require_internal_service)
):
    """
    Match statement transactions against book transactions.

    Returns matches with confidence and reasons, unmatched transactions
    on both sides, aggregate confidence and insights. Nothing is stored.

    Requires internal API key authentication.
    """
    limit = settings.MATCH_MAX_TRANSACTIONS_PER_SIDE
    for side, transactions in (
        ("statement", request.statement_transactions),
        ("book", request.book_transactions),
    ):
        if len(transactions) > limit:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Too many {side} transactions: {len(transactions)} exceeds the limit of {limit}"
            )

    options = _resolve_options(settings, request.options)

    if request.session_id:
        set_tag("reconciliation.session_id", request.session_id)

    logger.info(
        f"Matching session {request.session_id or '-'} for service {service.name}: "
        f"{len(request.statement_transactions)} statement, {len(request.book_transactions)} book transactions"
    )

    # CPU-bound; keep the event loop free for other sessions
    result = await run_in_threadpool(
        matching_engine.find_optimal_matches,
        request.statement_transactions,
        request.book_transactions,
        options
    )

    return success_response(result.to_dict())
