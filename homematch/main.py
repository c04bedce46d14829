from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from homematch import config
from homematch.api.routes import router as api_router
from homematch.db import init_schema
from homematch.errors import ServiceUnavailableError
from homematch.scheduler import shutdown_scheduler, start_scheduler
from homematch.utils import logger

# create FastAPI instance
app = FastAPI(title="HomeMatch")
app.include_router(api_router)


@app.exception_handler(ServiceUnavailableError)
def service_unavailable(request: Request, exc: ServiceUnavailableError):
    logger.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Service not configured"})


@app.exception_handler(RequestValidationError)
def invalid_request(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": errors})


@app.exception_handler(Exception)
def internal_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
def on_startup():
    # schema bootstrap only runs against a direct Postgres connection
    if config.POSTGRES_URL:
        try:
            init_schema()
        except Exception:
            logger.exception("Schema bootstrap failed; continuing with existing schema")
    start_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    shutdown_scheduler()
