"""
Reconciliation Errors

Exception taxonomy for the matching engine:
- InvalidInputError: the call itself is malformed (not a list, null entries,
  invalid options). Surfaced to API callers as 400 BAD_REQUEST.
- MatchingEngineError: the engine cannot produce a trustworthy result
  (e.g. a non-finite amount). Surfaced as 500 INTERNAL_SERVER_ERROR.

Low-confidence or missing matches are never errors; they are reported
as data in MatchResult.
"""

from typing import Any, Dict, List, Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInputError(ReconciliationError):
    """Raised when the engine is called with malformed collections or options"""
    pass


class MatchingEngineError(ReconciliationError):
    """Raised when matching cannot complete without corrupting the result"""
    pass


def summarize_validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Reduce pydantic error dicts to JSON-safe loc/msg/type entries."""
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": str(error.get("msg", "")),
            "type": str(error.get("type", "")),
        }
        for error in errors
    ]
