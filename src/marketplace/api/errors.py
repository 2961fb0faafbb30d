"""Status codes for marketplace errors not covered by Protean's handlers."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketplace.exceptions import GatewayError, SignatureMismatch, Unauthorized


async def _unauthorized(request: Request, exc: Unauthorized) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": str(exc)})


async def _gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": str(exc), "reference": exc.reference})


async def _signature_mismatch(request: Request, exc: SignatureMismatch) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid signature"})


def register_error_handlers(app: FastAPI) -> None:
    """Protean's mapping plus 403 for ``Unauthorized`` and 503 for ``GatewayError``.

    ``Unauthorized`` subclasses ``InvalidOperationError`` (422); Starlette
    picks the most specific handler along the MRO, so the 403 wins.
    """
    register_exception_handlers(app)
    app.add_exception_handler(Unauthorized, _unauthorized)
    app.add_exception_handler(GatewayError, _gateway_error)
    app.add_exception_handler(SignatureMismatch, _signature_mismatch)
