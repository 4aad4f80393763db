from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.router import router as v1_router
from app.core.telemetry import setup_telemetry
from app.schemas.common import ErrorResponse
from app.services.errors import (
    IncompleteListing,
    InvalidQuery,
    InvalidTransition,
    ListingError,
    NotFound,
    NotOwner,
    ProviderError,
    ProviderTimeout,
)

app = FastAPI(title="Listing API", version="0.1.0")

ERROR_STATUS: dict[type[ListingError], int] = {
    NotFound: 404,
    NotOwner: 403,
    InvalidTransition: 409,
    IncompleteListing: 422,
    InvalidQuery: 400,
}


@app.exception_handler(ListingError)
async def listing_error_handler(request: Request, exc: ListingError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 400)
    body = ErrorResponse(code=exc.code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=status_code, content={"detail": body.model_dump()})


# only search embeds on the request path; lifecycle and edits never reach the provider
@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    code = "provider_timeout" if isinstance(exc, ProviderTimeout) else "provider_unavailable"
    body = ErrorResponse(code=code, message="Search is temporarily unavailable. Please try again.")
    return JSONResponse(status_code=503, content={"detail": body.model_dump()})


setup_telemetry(app)
app.include_router(v1_router)
