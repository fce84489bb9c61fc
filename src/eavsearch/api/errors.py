"""Translation of domain and backend errors into HTTP errors."""

from __future__ import annotations

import logging

from fastapi import HTTPException

from eavsearch.adapters.base.exceptions import BackendUnavailable
from eavsearch.core.exceptions import InvalidValue, UnknownAttribute, ValidationError

logger = logging.getLogger(__name__)

_CLIENT_ERRORS = (InvalidValue, UnknownAttribute, ValidationError)


def to_http_exception(error: Exception, action: str) -> HTTPException:
    """Map an exception raised while handling a request to an ``HTTPException``.

    Bad request terms become 422, unreachable backends 503, anything else 500.
    """
    if isinstance(error, _CLIENT_ERRORS):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, BackendUnavailable):
        logger.warning("%s failed, backend unavailable: %s", action, error)
        return HTTPException(status_code=503, detail=str(error))
    logger.error("%s failed: %s", action, error, exc_info=error)
    return HTTPException(status_code=500, detail=f"{action} failed: {error!s}")
