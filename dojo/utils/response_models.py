"""
Standard response envelopes for API endpoints.

Every JSON body follows the same envelope:
- success: boolean indicating operation success
- data: the actual response payload
- message: optional message for context
- error: error summary when success=False
"""

from typing import Any


def success_response(data: Any = None, message: str = None) -> dict:
    """Create a standard success response dict."""
    response = {"success": True}
    if data is not None:
        response["data"] = data
    if message:
        response["message"] = message
    return response


def error_response(error: str, detail: str = None, code: str = None) -> dict:
    """Create a standard error response dict."""
    response = {"success": False, "error": error}
    if detail:
        response["detail"] = detail
    if code:
        response["code"] = code
    return response
