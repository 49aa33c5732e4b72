"""
Structured error responses.

Every OAuthError becomes {"success": false, "error": <public message>,
"code": <ErrorCode>} with the status mapped from its code. Internal detail
(exception message, provider text) stays in the server log.
"""

import logging

from fastapi.responses import JSONResponse

from adlink.platform.errors import OAuthError

logger = logging.getLogger(__name__)


def oauth_error_response(exc: OAuthError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "Request failed",
        extra={
            "error_code": exc.error_code.value,
            "status_code": exc.http_status,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=exc.http_status,
        content={
            "success": False,
            "error": exc.public_message,
            "code": exc.error_code.value,
        },
    )
