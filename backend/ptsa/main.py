from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .routers import events, rsvps, volunteers
from .utils.request_id import resolve_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"

app = FastAPI(title="PTSA Events API")


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"message": "Invalid request data", "errors": jsonable_encoder(exc.errors())}},
    )


app.middleware("http")(request_id_middleware)
app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(events.router)
app.include_router(rsvps.router)
app.include_router(volunteers.router)
