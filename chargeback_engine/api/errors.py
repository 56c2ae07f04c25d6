"""Map domain exceptions to HTTP errors"""

import logging

from fastapi import HTTPException

from chargeback_engine.domain.exceptions import (
    AuthorizationError,
    ConcurrentTransitionError,
    DisputeAlreadyFiledError,
    DisputeNotFoundError,
    DomainException,
    InvalidTransitionError,
    PersistenceError,
    RepresentmentNotFoundError,
    TransactionNotFoundError,
    ValidationError,
)

NOT_FOUND = (TransactionNotFoundError, DisputeNotFoundError, RepresentmentNotFoundError)


def to_http_exception(error: DomainException, request_id: str) -> HTTPException:
    if isinstance(error, InvalidTransitionError):
        logging.warning(f"Rejected transition: {error}", extra={"request_id": request_id})
        return HTTPException(
            status_code=409,
            detail={
                "error": "Action not allowed in current state",
                "action": error.action,
                "current_status": error.current_status,
                "expected_status": error.expected_statuses,
            },
        )
    if isinstance(error, ConcurrentTransitionError):
        logging.warning(f"Concurrent transition: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, AuthorizationError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, NOT_FOUND):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, DisputeAlreadyFiledError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValidationError):
        logging.warning(f"Validation error: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, PersistenceError):
        logging.error(f"Persistence error: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=503, detail="Storage unavailable")

    logging.error(f"Unhandled domain error: {error}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")
