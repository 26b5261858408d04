"""Mapping from failed Results to HTTP error bodies"""

import logging

from fastapi.responses import JSONResponse

from .errors import BillingError

logger = logging.getLogger(__name__)


def error_response(error: BillingError) -> JSONResponse:
    """`{"error": message}` with the error's status code; server-side detail stays in the log"""
    if error.is_client_error:
        logger.info(f"↩️ {type(error).__name__} ({error.status_code}): {error.detail}")
    else:
        logger.error(f"❌ {type(error).__name__} ({error.status_code}): {error.detail}")
    return JSONResponse(status_code=error.status_code, content={"error": error.message})
