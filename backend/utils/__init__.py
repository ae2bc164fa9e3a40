"""
Utils Package

Provides utility modules for:
- api_errors: Success/error response envelopes for the API
"""

from .api_errors import (
    ErrorCode,
    error_code_for_status,
    success_response,
    error_response,
)

__all__ = [
    'ErrorCode',
    'error_code_for_status',
    'success_response',
    'error_response',
]
