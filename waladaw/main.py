import logging
import os
from html import escape

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from . import __version__, config
from .auth import get_password_hash
from .crud.users import get_user_by_email
from .database import SessionLocal, init_db
from .errors import DomainError
from .jobs import start_background_jobs
from .models import User, UserRole
from .routers import (
    admin_router,
    cart_router,
    favorite_router,
    product_router,
    purchase_router,
    rating_router,
    user_router,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": 404,
    "validation": 422,
    "forbidden": 403,
    "conflict": 409,
    "unauthorized": 401,
    "business": 400,
    "concurrency": 409,
    "technical": 500,
}

app = FastAPI(
    title=config.APP_NAME,
    description="Second-hand marketplace: listings, cart, checkout, ratings and favorites",
    version=__version__,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(user_router.router)
app.include_router(admin_router.router)
app.include_router(product_router.router)
app.include_router(cart_router.router)
app.include_router(purchase_router.router)
app.include_router(favorite_router.router)
app.include_router(rating_router.router)

os.makedirs(config.UPLOAD_DIR, exist_ok=True)
app.mount(config.UPLOAD_URL_PREFIX, StaticFiles(directory=config.UPLOAD_DIR), name="uploads")


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api/")


def _wants_json(request: Request) -> bool:
    return _is_api(request) or "application/json" in request.headers.get("accept", "")


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    if _is_api(request):
        content = {"success": False, "error": exc.code, "message": exc.message}
    else:
        content = {"detail": {"error": exc.code, "message": exc.message}}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if not _is_api(request):
        return await request_validation_exception_handler(request, exc)
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "INVALID_DATA",
            "message": message,
            "details": jsonable_encoder(errors),
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if _wants_json(request):
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
        )
    return RedirectResponse(url="/error", status_code=303)


@app.get("/error", response_class=HTMLResponse, include_in_schema=False)
def error_page(message: str = "An unexpected error occurred. Please try again later."):
    return HTMLResponse(
        status_code=500,
        content=(
            "<!DOCTYPE html><html><head><meta charset='utf-8'>"
            f"<title>{config.APP_NAME} - Error</title></head>"
            f"<body><h1>Something went wrong</h1><p>{escape(message)}</p>"
            "<p><a href='/'>Back to the home page</a></p></body></html>"
        ),
    )


def init_admin_user():
    db = SessionLocal()
    try:
        admin_user = get_user_by_email(db, config.ADMIN_EMAIL, include_deleted=True)
        if not admin_user:
            admin_user = User(
                email=config.ADMIN_EMAIL.lower(),
                first_name="Admin",
                last_name=config.APP_NAME,
                hashed_password=get_password_hash(config.ADMIN_PASSWORD),
                role=UserRole.ADMIN.value,
            )
            db.add(admin_user)
            db.commit()
            logger.info("Admin user %s created", config.ADMIN_EMAIL)
        elif not admin_user.is_admin or admin_user.deleted:
            admin_user.role = UserRole.ADMIN.value
            admin_user.deleted = False
            db.commit()
            logger.info("Admin user %s restored", config.ADMIN_EMAIL)
    except Exception:
        logger.exception("Error initializing admin user")
        db.rollback()
    finally:
        db.close()


@app.on_event("startup")
def _startup() -> None:
    init_db()
    init_admin_user()
    if config.BACKGROUND_JOBS_ENABLED:
        start_background_jobs()


@app.get("/")
def root():
    return {
        "service": config.APP_NAME,
        "status": "running",
        "version": __version__,
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": "waladaw",
    }
