"""
Standardized response utilities
"""

import logging
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.errors import CheckInConfirmationRequired, GuestbookError
from app.schemas.common import StandardResponse, ErrorResponse

logger = logging.getLogger(__name__)


def success_response(
    message: str,
    data: Any = None,
    status_code: int = 200
) -> JSONResponse:
    """Create standardized success response"""
    response = StandardResponse(
        success=True,
        message=message,
        data=jsonable_encoder(data)
    )
    return JSONResponse(
        content=response.model_dump(),
        status_code=status_code
    )


def error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Any = None,
    status_code: int = 400
) -> JSONResponse:
    """Create standardized error response"""
    response = ErrorResponse(
        message=message,
        error_code=error_code,
        details=jsonable_encoder(details)
    )
    return JSONResponse(
        content=response.model_dump(),
        status_code=status_code
    )


def guestbook_error_response(exc: GuestbookError) -> JSONResponse:
    """Render a domain error; a cross-account hit renders exactly like a not-found"""
    details = exc.details
    if isinstance(exc, CheckInConfirmationRequired):
        details = {"guest": exc.guest}
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.message}")
    return error_response(
        message=exc.message,
        error_code=exc.error_code,
        details=details,
        status_code=exc.status_code
    )
