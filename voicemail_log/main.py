import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from voicemail_log import __version__
from voicemail_log.config import ACCOUNT_HEADER, Settings, get_settings
from voicemail_log.errors import ConstraintViolation, StorageUnavailable
from voicemail_log.logging_utils import RequestLoggingMiddleware, setup_logging
from voicemail_log.metrics import get_metrics, get_metrics_content_type, record_operation
from voicemail_log.repositories import IdentityResolver, VoicemailStore
from voicemail_log.schemas import (
    CreatedResponse,
    ErrorResponse,
    HealthResponse,
    SessionRequest,
    SessionResponse,
    StatusResponse,
    VoicemailCreateRequest,
    VoicemailListResponse,
    VoicemailResponse,
)
from voicemail_log.storage import Database, SchemaManager

logger = logging.getLogger(__name__)


# =============================================================================
# Dependencies
# =============================================================================

def get_store(request: Request) -> VoicemailStore:
    return request.app.state.voicemail_store


def get_identity_resolver(request: Request) -> IdentityResolver:
    return request.app.state.identity_resolver


def get_database(request: Request) -> Database:
    return request.app.state.db


def require_account_id(
    x_account_id: Annotated[Optional[str], Header(alias=ACCOUNT_HEADER)] = None,
) -> str:
    """Owner scope for voicemail endpoints, taken from the X-Account-Id header."""
    if not x_account_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"missing {ACCOUNT_HEADER} header"
        )
    return x_account_id


# =============================================================================
# Error Handlers
# =============================================================================

async def constraint_violation_handler(request: Request, exc: ConstraintViolation) -> JSONResponse:
    logger.warning(f"Constraint violation on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc)},
    )


async def storage_unavailable_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
    logger.error(f"Storage unavailable on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "storage unavailable"},
    )


def _result_of(exc: Exception) -> str:
    if isinstance(exc, ConstraintViolation):
        return "constraint_violation"
    return "storage_unavailable"


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application around an explicitly constructed storage client.

    Args:
        settings: Settings to use; defaults to the cached environment settings
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    db = Database(settings.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        - Startup: ensure the schema exists (failure aborts startup)
        - Shutdown: release pooled connections
        """
        SchemaManager(db).ensure_schema()
        yield
        db.dispose()

    app = FastAPI(
        title="Voicemail Log API",
        description="Record phone messages and track which ones have been returned",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.db = db
    app.state.identity_resolver = IdentityResolver(
        db, on_lookup_error=settings.LOOKUP_ERROR_POLICY
    )
    app.state.voicemail_store = VoicemailStore(
        db, returned_at_policy=settings.RETURNED_AT_POLICY
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(ConstraintViolation, constraint_violation_handler)
    app.add_exception_handler(StorageUnavailable, storage_unavailable_handler)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # =========================================================================
    # Health Check Routes
    # =========================================================================

    @app.get("/health/live", response_model=HealthResponse)
    async def health_live() -> HealthResponse:
        """Liveness probe - always returns 200 once the app is running."""
        return HealthResponse(status="ok")

    @app.get("/health/ready", response_model=HealthResponse)
    def health_ready(response: Response, db: Database = Depends(get_database)) -> HealthResponse:
        """
        Readiness probe - returns 200 only if the DB is reachable and both
        tables exist, otherwise 503.
        """
        if not db.check_health():
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return HealthResponse(
                status="not_ready",
                reason="Database not reachable or schema not applied"
            )
        return HealthResponse(status="ready")

    # =========================================================================
    # Session Route
    # =========================================================================

    @app.post("/session", response_model=SessionResponse)
    def resolve_session(
        body: SessionRequest,
        resolver: IdentityResolver = Depends(get_identity_resolver),
    ) -> SessionResponse:
        """
        Exchange whatever id the client holds for a valid account id.

        A fresh account is issued when the client holds nothing, the
        'Loading...' placeholder, an 'Error...' marker, or an unknown id.
        """
        try:
            account_id = resolver.resolve_or_create_account(body.account_id)
        except (ConstraintViolation, StorageUnavailable) as e:
            record_operation("resolve_account", _result_of(e))
            raise
        record_operation("resolve_account")
        return SessionResponse(account_id=account_id)

    # =========================================================================
    # Voicemail Routes
    # =========================================================================

    @app.get("/voicemails", response_model=VoicemailListResponse)
    def list_voicemails(
        account_id: str = Depends(require_account_id),
        store: VoicemailStore = Depends(get_store),
    ) -> VoicemailListResponse:
        """
        List voicemails not yet returned, most recent call first.
        """
        try:
            records = store.list_active(account_id)
        except (ConstraintViolation, StorageUnavailable) as e:
            record_operation("list", _result_of(e))
            raise
        record_operation("list")

        data = [VoicemailResponse.from_record(record) for record in records]
        logger.info(f"GET /voicemails: returned {len(data)} voicemails")
        return VoicemailListResponse(data=data, total=len(data))

    @app.post(
        "/voicemails",
        response_model=CreatedResponse,
        status_code=status.HTTP_201_CREATED,
        responses={
            409: {"model": ErrorResponse, "description": "Unknown account"},
            422: {"description": "Validation error"},
        }
    )
    def add_voicemail(
        body: VoicemailCreateRequest,
        account_id: str = Depends(require_account_id),
        store: VoicemailStore = Depends(get_store),
    ) -> CreatedResponse:
        """
        Log a new voicemail for the calling account.
        """
        try:
            voicemail_id = store.create(account_id, body)
        except (ConstraintViolation, StorageUnavailable) as e:
            record_operation("create", _result_of(e))
            raise
        record_operation("create")
        return CreatedResponse(id=voicemail_id)

    @app.delete("/voicemails/{voicemail_id}", response_model=StatusResponse)
    def delete_voicemail(
        voicemail_id: str,
        account_id: str = Depends(require_account_id),
        store: VoicemailStore = Depends(get_store),
    ) -> StatusResponse:
        """
        Delete a voicemail. Unknown or foreign ids succeed without effect.
        """
        try:
            store.delete(account_id, voicemail_id)
        except (ConstraintViolation, StorageUnavailable) as e:
            record_operation("delete", _result_of(e))
            raise
        record_operation("delete")
        return StatusResponse(status="ok")

    @app.post("/voicemails/{voicemail_id}/returned", response_model=StatusResponse)
    def mark_voicemail_returned(
        voicemail_id: str,
        account_id: str = Depends(require_account_id),
        store: VoicemailStore = Depends(get_store),
    ) -> StatusResponse:
        """
        Mark a voicemail as returned; it drops out of the active list.
        """
        try:
            store.mark_returned(account_id, voicemail_id)
        except (ConstraintViolation, StorageUnavailable) as e:
            record_operation("mark_returned", _result_of(e))
            raise
        record_operation("mark_returned")
        return StatusResponse(status="ok")

    # =========================================================================
    # Metrics Route
    # =========================================================================

    @app.get("/metrics")
    async def metrics() -> Response:
        """Expose Prometheus-style metrics."""
        return Response(
            content=get_metrics(),
            media_type=get_metrics_content_type()
        )


app = create_app()
