"""Maps core exceptions to JSON error responses. No internals leak to clients."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pricealerts.exceptions import (
    AlertNotFoundError,
    AlertStoreError,
    InvalidAlertError,
    TemplateNotFoundError,
)
from pricealerts.logging import get_logger

logger = get_logger(__name__)


def error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    body: dict[str, str] = {"error": error}
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AlertNotFoundError)
    async def handle_alert_not_found(_request: Request, exc: AlertNotFoundError) -> JSONResponse:
        return error_response(404, "Alert not found")

    @app.exception_handler(TemplateNotFoundError)
    async def handle_template_not_found(
        _request: Request, exc: TemplateNotFoundError
    ) -> JSONResponse:
        return error_response(404, "Template not found")

    @app.exception_handler(InvalidAlertError)
    async def handle_invalid_alert(_request: Request, exc: InvalidAlertError) -> JSONResponse:
        return error_response(422, "Invalid alert", str(exc))

    @app.exception_handler(AlertStoreError)
    async def handle_store_error(_request: Request, exc: AlertStoreError) -> JSONResponse:
        logger.error("api_alert_store_error", error=str(exc))
        return error_response(500, "Alert storage unavailable")
