from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from partpal.api.analytics import router as analytics_router
from partpal.api.location import router as location_router
from partpal.api.routes import router as api_router
from partpal.db import Base, engine
from partpal.exceptions import PartPalError
from partpal.utils import logger
import partpal.models  # noqa: F401 ensure models are imported so tables are known

# create FastAPI instance
app = FastAPI(title="PartPal Marketplace API")

app.include_router(api_router)
app.include_router(analytics_router)
app.include_router(location_router)


def _envelope(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, "message": message})


@app.exception_handler(PartPalError)
def handle_partpal_error(request: Request, exc: PartPalError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.error)
    return _envelope(exc.status_code, exc.error, exc.message)


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    message = ", ".join(
        f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return _envelope(400, "Validation failed", message)


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _envelope(500, "Internal server error", "Something went wrong")


@app.on_event("startup")
def on_startup_create_tables():
    # Ensure database tables are created on startup
    Base.metadata.create_all(bind=engine)
