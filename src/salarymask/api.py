"""FastAPI service exposing salarymask masking workflows.

The module follows common backend design patterns:

* Pydantic models capture request/response payloads and enforce validation.
* Routers group health checks, one-shot masking, manual selection sessions
  and attachment storage.
* Lightweight in-memory repositories track sessions and attachments for local
  experimentation.
* Swagger UI (``/docs``) and ReDoc (``/redoc``) provide interactive manuals for
  exercising each endpoint locally.

Run locally::

    uvicorn salarymask.api:app --host 0.0.0.0 --port 8000

Or via console script::

    salarymask-api
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, List, Literal, Optional
from urllib.parse import quote
from uuid import uuid4

from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Response,
    Security,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import CollectorRegistry, Counter, make_asgi_app
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from . import __version__
from .errors import (
    DocumentLoadError,
    RedactionError,
    SessionStateError,
    UploadPermissionError,
)
from .health import run_readiness_checks
from .logging import get_logger
from .pipeline import (
    DetectionPreview,
    check_salary_info,
    mask_salary_info,
    masked_filename,
)
from .session import RedactionSession
from .settings import ServiceSettings, get_settings
from .storage import (
    AttachmentMetadata,
    InMemoryBlobStore,
    InMemoryMetadataStore,
    delete_attachment,
    store_masked_document,
)
from .types import RedactionResult

settings: ServiceSettings = get_settings()
logger = get_logger(__name__)

auth_scheme = HTTPBearer(auto_error=False)

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf", "application/octet-stream"}


class HealthResponse(BaseModel):
    """Canonical health endpoint payload."""

    status: Literal["ok"] = "ok"


class ReadinessCheckModel(BaseModel):
    """Single readiness check result."""

    name: str
    status: Literal["pass", "warn", "fail"]
    detail: Optional[str] = None
    required: bool


class ReadyResponse(BaseModel):
    """Aggregated readiness response."""

    ready: bool
    checks: List[ReadinessCheckModel]


class RegionModel(BaseModel):
    page: int
    x: float
    y: float
    width: float
    height: float
    scale: float


class SessionModel(BaseModel):
    """Public view of a manual selection session."""

    id: str
    state: str
    page_count: int
    current_page: int
    scale: float
    regions: List[RegionModel] = Field(default_factory=list)
    can_commit: bool
    created_at: datetime


class Point(BaseModel):
    x: float
    y: float


class RegionCreate(BaseModel):
    """A completed drag in preview pixels.

    ``page`` and ``scale`` switch the session's page and zoom before the drag
    is replayed; omitted values keep the current ones.
    """

    start: Point
    end: Point
    page: Optional[int] = None
    scale: Optional[float] = None


class RegionCreated(BaseModel):
    index: int
    region: RegionModel


class AttachmentListResponse(BaseModel):
    items: List[AttachmentMetadata]
    total: int


class SessionNotFoundError(Exception):
    """Raised when a session id is not present in the repository."""


class SessionRepository:
    """In-memory registry of open manual selection sessions."""

    def __init__(self) -> None:
        self._sessions: Dict[str, RedactionSession] = {}
        self._created: Dict[str, datetime] = {}
        self._names: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, session: RedactionSession, file_name: str) -> str:
        session_id = uuid4().hex
        with self._lock:
            self._sessions[session_id] = session
            self._created[session_id] = datetime.utcnow()
            self._names[session_id] = file_name
        return session_id

    def get(self, session_id: str) -> RedactionSession:
        try:
            return self._sessions[session_id]
        except KeyError as exc:
            raise SessionNotFoundError(session_id) from exc

    def created_at(self, session_id: str) -> datetime:
        return self._created[session_id]

    def file_name(self, session_id: str) -> str:
        return self._names[session_id]

    def pop(self, session_id: str) -> RedactionSession:
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            self._created.pop(session_id, None)
            self._names.pop(session_id, None)
            return self._sessions.pop(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


session_repository = SessionRepository()
blob_store = InMemoryBlobStore()
metadata_store = InMemoryMetadataStore()


# Per-module registry so reloading the app does not re-register the counter
METRICS_REGISTRY = CollectorRegistry()
REQUESTS = Counter(
    "salarymask_requests_total", "API requests", ["route"], registry=METRICS_REGISTRY
)


app = FastAPI(
    title="salarymask API",
    description="Salary masking service for applicant PDF attachments.",
    version=__version__,
    openapi_tags=[
        {"name": "health", "description": "Service health and readiness probes."},
        {"name": "masking", "description": "Detection and automatic overlay masking."},
        {
            "name": "sessions",
            "description": "Manual region selection committed by page flattening.",
        },
        {"name": "attachments", "description": "Storage of masked attachments."},
    ],
)

if settings.cors_origins:
    allow_origins = ["*"] if "*" in settings.cors_origins else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Masked", "X-Masked-Count", "X-Redaction-Mode"],
    )

app.mount("/metrics", make_asgi_app(registry=METRICS_REGISTRY))

if settings.trust_role_header and settings.api_token is None:
    logger.warning(
        "X-User-Role is trusted without an API token; any client can claim admin",
        extra={"setting": "SALARYMASK_TRUST_ROLE_HEADER"},
    )


health_router = APIRouter(tags=["health"])
masking_router = APIRouter(tags=["masking"])
session_router = APIRouter(prefix="/sessions", tags=["sessions"])
attachment_router = APIRouter(prefix="/attachments", tags=["attachments"])


def require_auth(
    credentials: HTTPAuthorizationCredentials = Security(auth_scheme),
) -> None:
    """Simple bearer-token protection for managed cluster deployments."""

    token = settings.api_token
    if token is None:
        return
    if credentials is None or credentials.credentials != token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def caller_is_privileged(
    x_user_role: Optional[str] = Header(None),
    auth: None = Depends(require_auth),
) -> bool:
    """A token-authenticated caller is privileged.

    Without a token the ``X-User-Role`` header is only honoured when the
    deployment opts in with ``SALARYMASK_TRUST_ROLE_HEADER`` (e.g. behind a
    gateway that sets it).
    """

    if settings.api_token is not None:
        return True
    if not settings.trust_role_header:
        return False
    return (x_user_role or "").strip().lower() == "admin"


def _increment_metric(route: str) -> None:
    REQUESTS.labels(route=route).inc()


def _http_error(exc: RedactionError) -> HTTPException:
    if isinstance(exc, DocumentLoadError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, SessionStateError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, UploadPermissionError):
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=exc.to_dict())


async def _read_pdf_upload(file: UploadFile) -> bytes:
    """Read an uploaded PDF, enforcing the size limit and the file type."""

    limit = settings.max_upload_bytes
    data = await file.read(limit + 1)
    if len(data) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.max_upload_mb:g}MB upload limit",
        )
    content_type = (file.content_type or "").lower()
    name = (file.filename or "").lower()
    if content_type not in PDF_CONTENT_TYPES and not name.endswith(".pdf"):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Only PDF files are supported",
        )
    if not data.startswith(b"%PDF"):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Uploaded file is not a PDF document",
        )
    return data


def _pdf_response(result: RedactionResult, original_name: str, mode: str) -> Response:
    name = masked_filename(original_name) if result.was_masked else original_name
    return Response(
        content=result.output_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(name)}",
            "X-Masked": "true" if result.was_masked else "false",
            "X-Masked-Count": str(result.masked_count),
            "X-Redaction-Mode": mode,
        },
    )


def _session_model(session_id: str, session: RedactionSession) -> SessionModel:
    return SessionModel(
        id=session_id,
        state=session.state.value,
        page_count=session.page_count,
        current_page=session.current_page,
        scale=session.scale,
        regions=[RegionModel(**r.to_dict()) for r in session.regions],
        can_commit=session.can_commit,
        created_at=session_repository.created_at(session_id),
    )


def _get_session_or_404(session_id: str) -> RedactionSession:
    try:
        return session_repository.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Session not found"
        )


@health_router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    _increment_metric("health")
    return HealthResponse()


@health_router.get("/livez", response_model=HealthResponse)
def livez() -> HealthResponse:
    return HealthResponse(status="ok")


@health_router.get("/readyz", response_model=ReadyResponse)
def readyz():
    checks = run_readiness_checks(settings)
    ready = True
    payload: List[ReadinessCheckModel] = []
    for check in checks:
        payload.append(
            ReadinessCheckModel(
                name=check.name,
                status=check.status,
                detail=check.detail,
                required=check.required,
            )
        )
        if check.required and check.status == "fail":
            ready = False
        if (
            check.required
            and check.status == "warn"
            and not settings.allowance_warn_only_checks
        ):
            ready = False
    response = ReadyResponse(ready=ready, checks=payload)
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=response.model_dump())


@masking_router.post("/detect", response_model=DetectionPreview)
async def detect(
    file: UploadFile = File(...),
    auth: None = Depends(require_auth),
) -> DetectionPreview:
    """Report salary fragments without modifying the document."""

    _increment_metric("detect")
    data = await _read_pdf_upload(file)
    return await run_in_threadpool(check_salary_info, data, settings.run_config())


@masking_router.post("/mask", response_class=Response)
async def mask(
    file: UploadFile = File(...),
    auth: None = Depends(require_auth),
) -> Response:
    """Cover detected salary text with overlay boxes.

    The covered text stays extractable from the returned PDF; use a session
    commit when the text must be destroyed.
    """

    _increment_metric("mask")
    data = await _read_pdf_upload(file)
    try:
        result = await run_in_threadpool(mask_salary_info, data, settings.run_config())
    except RedactionError as exc:
        raise _http_error(exc) from exc
    return _pdf_response(result, file.filename or "document.pdf", "overlay")


@session_router.post("", response_model=SessionModel, status_code=status.HTTP_201_CREATED)
async def create_session(
    file: UploadFile = File(...),
    auth: None = Depends(require_auth),
) -> SessionModel:
    _increment_metric("sessions_create")
    data = await _read_pdf_upload(file)
    try:
        session = await run_in_threadpool(RedactionSession, data, settings.run_config())
    except RedactionError as exc:
        raise _http_error(exc) from exc
    session_id = session_repository.add(session, file.filename or "document.pdf")
    logger.info(
        "Session opened",
        extra={"session_id": session_id, "page_count": session.page_count},
    )
    return _session_model(session_id, session)


@session_router.get("/{session_id}", response_model=SessionModel)
def get_session(session_id: str, auth: None = Depends(require_auth)) -> SessionModel:
    return _session_model(session_id, _get_session_or_404(session_id))


@session_router.get("/{session_id}/preview", response_class=Response)
def session_preview(
    session_id: str,
    page: Optional[int] = Query(None, ge=1),
    scale: Optional[float] = Query(None, gt=0),
    auth: None = Depends(require_auth),
) -> Response:
    """PNG of the requested page; out-of-range page or zoom requests are ignored."""

    session = _get_session_or_404(session_id)
    try:
        if page is not None:
            session.go_to_page(page)
        if scale is not None:
            session.set_zoom(scale)
        preview = session.render_preview()
    except RedactionError as exc:
        raise _http_error(exc) from exc
    return Response(
        content=preview.png,
        media_type="image/png",
        headers={"X-Page": str(preview.page), "X-Scale": str(preview.scale)},
    )


@session_router.post(
    "/{session_id}/regions",
    response_model=RegionCreated,
    status_code=status.HTTP_201_CREATED,
)
def add_region(
    session_id: str,
    payload: RegionCreate,
    auth: None = Depends(require_auth),
) -> RegionCreated:
    session = _get_session_or_404(session_id)
    try:
        if payload.page is not None and not session.go_to_page(payload.page):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Page {payload.page} is outside the document",
            )
        if payload.scale is not None and not session.set_zoom(payload.scale):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Zoom {payload.scale} is outside the allowed range",
            )
        session.pointer_down(payload.start.x, payload.start.y)
        region = session.pointer_up(payload.end.x, payload.end.y)
    except RedactionError as exc:
        raise _http_error(exc) from exc
    if region is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Selection is smaller than the minimum size and was discarded",
        )
    return RegionCreated(index=len(session.regions) - 1, region=RegionModel(**region.to_dict()))


@session_router.delete("/{session_id}/regions/{index}", status_code=status.HTTP_204_NO_CONTENT)
def remove_region(
    session_id: str, index: int, auth: None = Depends(require_auth)
) -> Response:
    session = _get_session_or_404(session_id)
    try:
        session.remove_region(index)
    except IndexError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Region not found"
        )
    except RedactionError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@session_router.post("/{session_id}/commit", response_class=Response)
async def commit_session(
    session_id: str, auth: None = Depends(require_auth)
) -> Response:
    """Flatten the pages with regions and return the masked PDF.

    A failed commit leaves the session open so it can be retried or cancelled.
    """

    _increment_metric("sessions_commit")
    session = _get_session_or_404(session_id)
    try:
        result = await run_in_threadpool(session.commit)
    except RedactionError as exc:
        raise _http_error(exc) from exc
    name = session_repository.file_name(session_id)
    session_repository.pop(session_id)
    return _pdf_response(result, name, "flatten")


@session_router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_session(session_id: str, auth: None = Depends(require_auth)) -> Response:
    session = _get_session_or_404(session_id)
    try:
        session.cancel()
    except RedactionError as exc:
        raise _http_error(exc) from exc
    session_repository.pop(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@attachment_router.post(
    "/{owner_id}", response_model=AttachmentMetadata, status_code=status.HTTP_201_CREATED
)
async def upload_attachment(
    owner_id: str,
    file: UploadFile = File(...),
    mask_salary: bool = Form(True),
    visibility: Literal["all", "admin_only"] = Form("all"),
    privileged: bool = Depends(caller_is_privileged),
) -> AttachmentMetadata:
    """Store a PDF for ``owner_id``, masking salary text first unless disabled."""

    _increment_metric("attachments_upload")
    if not privileged:
        raise _http_error(UploadPermissionError("Only administrators can upload attachments"))
    data = await _read_pdf_upload(file)
    name = file.filename or "document.pdf"
    masked = False
    if mask_salary:
        try:
            result = await run_in_threadpool(mask_salary_info, data, settings.run_config())
        except RedactionError as exc:
            raise _http_error(exc) from exc
        data, masked = result.output_bytes, result.was_masked
    try:
        return store_masked_document(
            blob_store,
            metadata_store,
            owner_id=owner_id,
            original_name=name,
            data=data,
            privileged=privileged,
            visibility=visibility,
            masked=masked,
        )
    except RedactionError as exc:
        raise _http_error(exc) from exc


@attachment_router.get("/{owner_id}", response_model=AttachmentListResponse)
def list_attachments(
    owner_id: str, privileged: bool = Depends(caller_is_privileged)
) -> AttachmentListResponse:
    items = metadata_store.list_by_owner(owner_id)
    if not privileged:
        items = [m for m in items if m.visibility == "all"]
    return AttachmentListResponse(items=items, total=len(items))


@attachment_router.delete("/{owner_id}/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_attachment(
    owner_id: str,
    attachment_id: str,
    privileged: bool = Depends(caller_is_privileged),
) -> Response:
    if not privileged:
        raise _http_error(UploadPermissionError("Only administrators can delete attachments"))
    match = next(
        (m for m in metadata_store.list_by_owner(owner_id) if m.id == attachment_id), None
    )
    if match is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found"
        )
    delete_attachment(blob_store, metadata_store, match)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.include_router(health_router)
app.include_router(masking_router)
app.include_router(session_router)
app.include_router(attachment_router)


def run(
    host: Optional[str] = None,
    port: Optional[int] = None,
    reload: bool = False,
    workers: int = 1,
    log_level: str = "info",
) -> None:
    """Launch the API server via ``uvicorn``."""

    import uvicorn

    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    uvicorn.run(
        "salarymask.api:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        workers=workers,
        log_level=log_level,
    )
