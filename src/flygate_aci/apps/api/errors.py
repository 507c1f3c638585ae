from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from flygate_aci.services.results import Rejected

__all__ = ["ApiError", "install_error_handlers"]


class ApiError(Exception):
    """Error rendered as ``{"error": ..., "reason": ...}`` with the given status."""

    def __init__(self, status_code: int, error: str, *, reason: str | None = None) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.reason = reason

    @classmethod
    def from_rejection(cls, status_code: int, rejected: Rejected) -> "ApiError":
        return cls(status_code, rejected.message, reason=rejected.reason.value)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        content = {"error": exc.error}
        if exc.reason:
            content["reason"] = exc.reason
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )
