import logging
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from stockledger.core.exceptions import LedgerError
from stockledger.schemas.response import new_request_id

log = logging.getLogger("stockledger.errors")


# ----------- Exception Handlers (called by FastAPI) -----------

def ledger_exception_handler(request: Request, exc: LedgerError):
    """Maps ledger errors to their HTTP status. InsufficientStock reads as 'just sold out' to shoppers."""
    if exc.status_code >= 500:
        log.error(f"Ledger error on path {request.url.path}: {exc.message}")
    else:
        log.info(f"Rejected {request.method} {request.url.path}: {exc.code} ({exc.message})")
    body = {
        "success": False,
        "error": exc.to_dict(),
        "request_id": new_request_id(),
    }
    return JSONResponse(status_code=exc.status_code, content=body)


def http_exception_handler(request: Request, exc: HTTPException):
    """Handles exceptions raised by HTTPException (e.g., 404, 400)."""
    body = {
        "success": False,
        "error": {
            "code": "http_error",
            "message": exc.detail,
        },
        "request_id": new_request_id(),
    }
    return JSONResponse(status_code=exc.status_code, content=body)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handles Pydantic validation errors (422 Unprocessable Entity)."""
    body = {
        "success": False,
        "error": {
            "code": "validation_error",
            "message": "Invalid input data",
            "details": exc.errors(),
        },
        "request_id": new_request_id(),
    }
    return JSONResponse(status_code=422, content=body)


def generic_exception_handler(request: Request, exc: Exception):
    """Handles all unhandled exceptions (500 Internal Server Error)."""
    log.error(f"Unhandled exception on path: {request.url.path}", exc_info=exc)

    body = {
        "success": False,
        "error": {
            "code": "server_error",
            "message": "Internal Server Error",
        },
        "request_id": new_request_id(),
    }
    return JSONResponse(status_code=500, content=body)


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(LedgerError, ledger_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
