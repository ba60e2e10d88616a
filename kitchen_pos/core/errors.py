from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class DomainError(Exception):
    """Base class for errors raised by the service layer.

    Each subclass carries the HTTP status the API answers with; the
    exception handler registered in ``kitchen_pos.main`` does the mapping.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    status_code = 400


class ReferentialError(DomainError):
    status_code = 422


class ConflictError(DomainError):
    status_code = 409


class AuthorizationError(DomainError):
    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class IdentityProviderError(Exception):
    """The identity provider rejected or failed an account operation."""


class IdentityAccountExistsError(IdentityProviderError):
    pass


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def _domain_error_handler(_request: Request, exc: DomainError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
