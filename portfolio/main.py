import logging
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import insert

from portfolio.api import catalog, creations, media, notifications, public, request_logs, screenshots, translations
from portfolio.auth import create_admin_token, credentials_match, optional_subject
from portfolio.config import settings
from portfolio.database import engine, get_session
from portfolio.deps import errors_by_field
from portfolio.jobs.broker import broker, dispatch_later
from portfolio.jobs.tasks import analyze_bot_request
from portfolio.schemas import LoginRequest, TokenResponse
from portfolio.tables import logged_requests_table, metadata

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
    if settings.jwt_secret_key == "change-me":
        raise RuntimeError(
            "PORTFOLIO_JWT_SECRET_KEY must be set to a non-default secure value."
        )
    metadata.create_all(engine)
    logger.info("Database schema ready")


@app.on_event("startup")
async def start_broker() -> None:
    if not broker.is_worker_process:
        await broker.startup()


@app.on_event("shutdown")
async def stop_broker() -> None:
    if not broker.is_worker_process:
        await broker.shutdown()


cors_origins = list(settings.cors_origins or [])
allow_all_origins = "*" in cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors_by_field(exc.errors())},
    )


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _should_log(path: str) -> bool:
    if not settings.log_requests:
        return False
    return not any(path.startswith(prefix) for prefix in settings.log_requests_excluded_prefixes)


def _store_request(request: Request, status_code: int) -> int:
    with get_session() as session:
        return session.execute(
            insert(logged_requests_table)
            .values(
                method=request.method,
                url=str(request.url),
                path=request.url.path,
                status_code=status_code,
                ip_address=_client_ip(request),
                user_agent=request.headers.get("user-agent"),
                referer=request.headers.get("referer"),
                user_id=optional_subject(request),
            )
            .returning(logged_requests_table.c.id)
        ).scalar_one()


@app.middleware("http")
async def log_request(request: Request, call_next):
    response = await call_next(request)
    if not _should_log(request.url.path):
        return response
    try:
        request_id = _store_request(request, response.status_code)
        await dispatch_later(analyze_bot_request, settings.bot_analysis_delay_seconds, request_id)
    except Exception:
        logger.exception("Failed to log request %s %s", request.method, request.url.path)
    return response


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/login", response_model=TokenResponse)
async def login(payload: LoginRequest) -> TokenResponse:
    if not credentials_match(payload.email, payload.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    return TokenResponse(access_token=create_admin_token(str(payload.email)))


app.include_router(public.router)
app.include_router(translations.router)
app.include_router(translations.dashboard_router)
app.include_router(screenshots.router)
app.include_router(creations.router)
app.include_router(catalog.router)
app.include_router(media.router)
app.include_router(request_logs.router)
app.include_router(notifications.router)
