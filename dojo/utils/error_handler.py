"""
Error Handler Utility - Safe error responses for the dojo API

Two kinds of failure reach clients:

- Precondition failures (locked account, duplicate payment period, ...) are
  expected outcomes. Services return them as structured results and routes
  turn them into HTTPException via precondition_error(), keeping the machine
  readable code next to the human message.
- Unexpected errors are logged with their traceback and answered with a
  generic message, never the internal exception text.

Usage:
    from dojo.utils.error_handler import log_and_raise, precondition_error

    ok, result = service.submit_payment(...)
    if not ok:
        raise precondition_error(400, result["error"], result["message"])

    try:
        # risky operation
    except Exception as e:
        log_and_raise(500, "listing payments", e, logger)
"""

import logging
from typing import Any, NoReturn
from fastapi import HTTPException


def precondition_error(status_code: int, code: str, message: str, **extra: Any) -> HTTPException:
    """
    Build an HTTPException for an expected business-rule failure.

    The detail is a dict {"code", "message", ...extra} so the frontend can
    branch on the code and show the message as-is.
    """
    detail = {"code": code, "message": message}
    detail.update(extra)
    return HTTPException(status_code=status_code, detail=detail)


def safe_error_response(
    status_code: int,
    operation: str,
    exception: Exception,
    logger: logging.Logger
) -> HTTPException:
    """
    Create a safe HTTPException that doesn't expose internal details.

    Logs the full exception with traceback, then returns an HTTPException with
    a generic user-facing message.

    Args:
        status_code: HTTP status code (e.g., 500, 400)
        operation: Description of what operation failed (e.g., "recording payment")
        exception: The caught exception
        logger: Logger instance for recording the error

    Returns:
        HTTPException with sanitized error message
    """
    logger.error(f"{operation} failed: {exception}", exc_info=True)

    if status_code >= 500:
        detail = f"An internal error occurred while {operation}. Please try again later."
    else:
        detail = f"Error while {operation}. Please check your request and try again."

    return HTTPException(status_code=status_code, detail=detail)


def log_and_raise(
    status_code: int,
    operation: str,
    exception: Exception,
    logger: logging.Logger
) -> NoReturn:
    """
    Log an exception and raise a safe HTTPException.

    Raises:
        HTTPException: Always raises with sanitized error message
    """
    raise safe_error_response(status_code, operation, exception, logger)
