"""FastAPI app with health, project and manufacturer matching endpoints.

The caller's identity arrives in the ``X-User-Id`` header; authentication
itself happens upstream.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .cache import MatchCache
from .catalog import ProductCatalog, SqlProductCatalog
from .config import settings
from .db import AsyncSessionMaker, get_session
from .logging_config import setup_logging
from .pipelines.matching import (
    MatchingError,
    MatchResult,
    contacted_at_iso,
    find_matching_manufacturers,
    load_contact_state,
    result_cache,
)
from .pipelines.projects import (
    ManufacturerNotFoundError,
    ProjectError,
    ProjectNotFoundError,
    ProjectValidationError,
    contact_manufacturer,
    create_project,
    delete_project,
    get_owned_project,
    list_projects,
    project_analytics,
    update_project,
    update_project_status,
)

logger = logging.getLogger(__name__)


# Pydantic request/response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class SelectedProductDTO(BaseModel):
    """Product the brand wants manufactured."""
    id: str | None = None
    name: str = Field(min_length=1, max_length=255)
    type: Literal["PRODUCT", "CATEGORY", "FOODTYPE"] | None = None
    category: str | None = None


class CreateProjectRequest(BaseModel):
    """Create project request."""
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=2000)
    selected_product: SelectedProductDTO | None = None
    volume: str = Field(min_length=1, max_length=100)
    units: str = Field(min_length=1, max_length=100)
    packaging: list[str] = Field(default_factory=list)
    location: list[str] = Field(default_factory=list)
    allergen: list[str] = Field(default_factory=list)
    certification: list[str] = Field(default_factory=list)
    additional: str | None = Field(default=None, max_length=1000)
    status: str | None = None


class ProjectDTO(BaseModel):
    """Stored project."""
    id: int
    name: str
    description: str
    status: str
    selected_product: dict | None
    volume: str
    units: str
    packaging: list[str]
    location: list[str]
    allergen: list[str]
    certification: list[str]
    additional: str | None
    timeline: list[dict]
    created_at: str
    updated_at: str


class UpdateProjectRequest(BaseModel):
    """Partial requirement edit; omitted fields stay unchanged."""
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1, max_length=2000)
    selected_product: SelectedProductDTO | None = None
    volume: str | None = Field(default=None, min_length=1, max_length=100)
    units: str | None = Field(default=None, min_length=1, max_length=100)
    packaging: list[str] | None = None
    location: list[str] | None = None
    allergen: list[str] | None = None
    certification: list[str] | None = None
    additional: str | None = Field(default=None, max_length=1000)


class ProjectMatchesResponse(BaseModel):
    status: str
    project: ProjectDTO
    matching_count: int
    message: str


class ProjectListResponse(BaseModel):
    count: int
    projects: list[ProjectDTO]


class DeleteProjectResponse(BaseModel):
    status: str
    project_id: int
    message: str


class AnalyticsSummaryDTO(BaseModel):
    total_projects: int
    active_projects: int
    in_review_projects: int
    completed_projects: int
    total_matches: int
    contacted_manufacturers: int


class RecentActivityDTO(BaseModel):
    id: int
    name: str
    status: str
    updated_at: str
    timeline: list[dict]


class AnalyticsResponse(BaseModel):
    summary: AnalyticsSummaryDTO
    status_breakdown: dict[str, int]
    recent_activity: list[RecentActivityDTO]


class StatusUpdateRequest(BaseModel):
    status: str
    reason: str | None = None


class CriterionDTO(BaseModel):
    """Per-criterion score with explanation."""
    score: int
    max_score: int
    explanation: str


class ManufacturerMatchDTO(BaseModel):
    """Single ranked manufacturer."""
    id: int | str
    name: str | None
    company_name: str | None
    email: str | None
    address: str | None
    industry: str | None
    certificates: list[str]
    match_score: float
    match_score_percent: int
    match_details: dict[str, CriterionDTO]
    match_strength: str
    status: str = "pending"
    contacted_at: str | None = None


class ManufacturersResponse(BaseModel):
    project_id: int
    count: int
    manufacturers: list[ManufacturerMatchDTO]


class ContactRequest(BaseModel):
    message: str | None = None
    contact_method: str | None = None


class ContactResponse(BaseModel):
    status: str
    project_id: int
    manufacturer_id: int
    contact_method: str
    contacted_at: str
    message: str


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Brand projects matched to manufacturers by weighted criteria",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],  # Frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies
def get_catalog() -> ProductCatalog:
    return SqlProductCatalog(AsyncSessionMaker)


def get_match_cache() -> MatchCache:
    return result_cache


async def get_current_user_id(x_user_id: int | None = Header(default=None)) -> int:
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User authentication required",
        )
    return x_user_id


# Exception handlers
@app.exception_handler(ProjectNotFoundError)
async def project_not_found_handler(request, exc: ProjectNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(error="not_found", detail=str(exc)).model_dump(),
    )


@app.exception_handler(ManufacturerNotFoundError)
async def manufacturer_not_found_handler(request, exc: ManufacturerNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(error="not_found", detail=str(exc)).model_dump(),
    )


@app.exception_handler(ProjectValidationError)
async def project_validation_handler(request, exc: ProjectValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="validation_error", detail=str(exc)).model_dump(),
    )


@app.exception_handler(ProjectError)
async def project_error_handler(request, exc: ProjectError):
    """Handle project persistence errors."""
    logger.error(f"Project error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="project_error", detail=str(exc)).model_dump(),
    )


@app.exception_handler(MatchingError)
async def matching_error_handler(request, exc: MatchingError):
    """Handle matching persistence errors."""
    logger.error(f"Matching error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="matching_error", detail=str(exc)).model_dump(),
    )


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def project_to_dto(project: models.Project) -> ProjectDTO:
    return ProjectDTO(
        id=project.id,
        name=project.name,
        description=project.description,
        status=project.status,
        selected_product=project.selected_product,
        volume=project.volume,
        units=project.units,
        packaging=project.packaging or [],
        location=project.location or [],
        allergen=project.allergen or [],
        certification=project.certification or [],
        additional=project.additional,
        timeline=project.timeline or [],
        created_at=_iso(project.created_at),
        updated_at=_iso(project.updated_at),
    )


def match_to_dto(
    match: MatchResult,
    record: models.ProjectManufacturer | None = None,
) -> ManufacturerMatchDTO:
    return ManufacturerMatchDTO(
        **match.to_dict(),
        status=record.status if record else "pending",
        contacted_at=contacted_at_iso(record),
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "projects": "/projects",
            "analytics": "/projects/analytics",
            "project": "/projects/{project_id}",
            "update_status": "/projects/{project_id}/status",
            "manufacturers": "/projects/{project_id}/manufacturers",
            "contact": "/projects/{project_id}/contact/{manufacturer_id}",
            "docs": "/docs",
        },
    }


@app.post(
    "/projects",
    response_model=ProjectMatchesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_project_endpoint(
    request: CreateProjectRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    catalog: ProductCatalog = Depends(get_catalog),
    cache: MatchCache = Depends(get_match_cache),
) -> ProjectMatchesResponse:
    """Create a project and record its initial manufacturer matches."""
    logger.info(f"Creating project '{request.name}' for user {user_id}")

    created = await create_project(
        session,
        user_id,
        request.model_dump(),
        catalog,
        cache=cache,
    )
    return ProjectMatchesResponse(
        status="success",
        project=project_to_dto(created.project),
        matching_count=len(created.matches),
        message="Project created successfully",
    )


@app.get("/projects", response_model=ProjectListResponse)
async def get_projects(
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=200),
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ProjectListResponse:
    """List the caller's projects, optionally filtered by status and text."""
    projects = await list_projects(session, user_id, status=status_filter, search=search)
    return ProjectListResponse(
        count=len(projects),
        projects=[project_to_dto(p) for p in projects],
    )


# Declared before /projects/{project_id} so the literal path wins
@app.get("/projects/analytics", response_model=AnalyticsResponse)
async def get_project_analytics(
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> AnalyticsResponse:
    analytics = await project_analytics(session, user_id)
    return AnalyticsResponse(
        summary=AnalyticsSummaryDTO(
            total_projects=analytics.total_projects,
            active_projects=analytics.count("active"),
            in_review_projects=analytics.count("in_review"),
            completed_projects=analytics.count("completed"),
            total_matches=analytics.total_matches,
            contacted_manufacturers=analytics.contacted_manufacturers,
        ),
        status_breakdown=analytics.status_breakdown,
        recent_activity=[
            RecentActivityDTO(
                id=p.id,
                name=p.name,
                status=p.status,
                updated_at=_iso(p.updated_at),
                timeline=p.timeline or [],
            )
            for p in analytics.recent_activity
        ],
    )


@app.get("/projects/{project_id}", response_model=ProjectDTO)
async def get_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ProjectDTO:
    project = await get_owned_project(session, project_id, user_id)
    return project_to_dto(project)


@app.put("/projects/{project_id}", response_model=ProjectMatchesResponse)
async def update_project_endpoint(
    project_id: int,
    request: UpdateProjectRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    catalog: ProductCatalog = Depends(get_catalog),
    cache: MatchCache = Depends(get_match_cache),
) -> ProjectMatchesResponse:
    """Edit project requirements and recalculate manufacturer matches."""
    project = await get_owned_project(session, project_id, user_id)
    updated = await update_project(
        session,
        project,
        request.model_dump(exclude_unset=True),
        catalog,
        cache=cache,
    )
    return ProjectMatchesResponse(
        status="success",
        project=project_to_dto(updated.project),
        matching_count=len(updated.matches),
        message="Project updated successfully",
    )


@app.delete("/projects/{project_id}", response_model=DeleteProjectResponse)
async def delete_project_endpoint(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    cache: MatchCache = Depends(get_match_cache),
) -> DeleteProjectResponse:
    project = await get_owned_project(session, project_id, user_id)
    await delete_project(session, project, cache=cache)
    return DeleteProjectResponse(
        status="success",
        project_id=project_id,
        message="Project deleted successfully",
    )


@app.patch("/projects/{project_id}/status", response_model=ProjectDTO)
async def update_status(
    project_id: int,
    request: StatusUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ProjectDTO:
    project = await get_owned_project(session, project_id, user_id)
    project = await update_project_status(session, project, request.status, request.reason)
    return project_to_dto(project)


@app.get(
    "/projects/{project_id}/manufacturers",
    response_model=ManufacturersResponse,
)
async def get_project_manufacturers(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    catalog: ProductCatalog = Depends(get_catalog),
    cache: MatchCache = Depends(get_match_cache),
) -> ManufacturersResponse:
    """Rank manufacturers for a project and merge stored contact state.

    A failed match run yields an empty list rather than an error.
    """
    project = await get_owned_project(session, project_id, user_id)
    matches = await find_matching_manufacturers(session, project, catalog, cache=cache)
    contact_state = await load_contact_state(session, project.id)

    manufacturers = [match_to_dto(m, contact_state.get(m.id)) for m in matches]
    return ManufacturersResponse(
        project_id=project.id,
        count=len(manufacturers),
        manufacturers=manufacturers,
    )


@app.post(
    "/projects/{project_id}/contact/{manufacturer_id}",
    response_model=ContactResponse,
)
async def contact_manufacturer_endpoint(
    project_id: int,
    manufacturer_id: int,
    request: ContactRequest = ContactRequest(),
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ContactResponse:
    """Record that the brand contacted a manufacturer about a project."""
    project = await get_owned_project(session, project_id, user_id)
    record = await contact_manufacturer(
        session,
        project,
        manufacturer_id,
        contact_method=request.contact_method,
    )
    return ContactResponse(
        status="success",
        project_id=project.id,
        manufacturer_id=manufacturer_id,
        contact_method=request.contact_method or "email",
        contacted_at=contacted_at_iso(record) or "",
        message="Manufacturer contacted successfully",
    )
