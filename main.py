import os
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException

import carts
import catalog
import contact
import orders
import policies
import users
from config import get_settings
from database import connect, ensure_indexes
from errors import AppError, ServiceUnavailableError
from logging_config import add_context, clear_context, configure_logging

settings = get_settings()
configure_logging(settings)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "db", None) is None:
        app.state.db = connect(settings)
        try:
            ensure_indexes(app.state.db)
        except ConnectionFailure as exc:
            # requests will report 503 until the database is reachable
            logger.error("mongo_unavailable_at_startup", error=str(exc))
    yield
    db = getattr(app.state, "db", None)
    if db is not None:
        db.client.close()
        app.state.db = None


app = FastAPI(title="Aquarium Shop API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(settings.upload_dir, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


# ----------------------- Middleware -----------------------
@app.middleware("http")
async def request_context(request: Request, call_next):
    clear_context()
    add_context(request_id=request.headers.get("x-request-id") or uuid.uuid4().hex, method=request.method, path=request.url.path)
    response = await call_next(request)
    logger.debug("request_completed", status_code=response.status_code)
    return response


# ----------------------- Errors -----------------------
def _error(status_code: int, message: str, detail: str = None) -> JSONResponse:
    content = {"message": message}
    if detail and settings.is_development:
        content["error"] = detail
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("request_failed", status_code=exc.status_code, message=exc.message)
    else:
        logger.info("request_rejected", status_code=exc.status_code, message=exc.message)
    return _error(exc.status_code, exc.message)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = "Route not found"
    return _error(exc.status_code, message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return _error(400, "; ".join(parts) or "Invalid request")


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return _error(400, "Duplicate value", str(exc))


@app.exception_handler(ConnectionFailure)
async def db_unavailable_handler(request: Request, exc: ConnectionFailure):
    logger.error("mongo_unavailable", error=str(exc))
    return _error(503, ServiceUnavailableError.message)


@app.exception_handler(PyMongoError)
async def db_error_handler(request: Request, exc: PyMongoError):
    logger.error("mongo_error", error=str(exc))
    return _error(500, "Something went wrong!", str(exc))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error")
    return _error(500, "Something went wrong!", str(exc))


# ----------------------- Routers -----------------------
app.include_router(catalog.product_router)
app.include_router(catalog.accessory_router)
app.include_router(catalog.marine_setup_router)
app.include_router(catalog.category_router)
app.include_router(users.router)
app.include_router(orders.router)
app.include_router(carts.router)
app.include_router(contact.router)
app.include_router(policies.router)


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Aquarium Shop API"}


@app.get("/health")
def health(request: Request):
    response = {
        "backend": "running",
        "database": "not available",
        "database_name": settings.database_name,
        "collections": [],
    }
    db = getattr(request.app.state, "db", None)
    try:
        if db is not None:
            db.command("ping")
            response["database"] = "connected"
            response["collections"] = db.list_collection_names()[:10]
    except PyMongoError as e:
        response["database"] = f"error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
