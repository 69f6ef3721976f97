"""Project lifecycle: creation, listing, updates, deletion, status changes,
manufacturer contact and per-owner analytics.

Status changes and contacts append an event to the project's timeline.
Requirement edits re-run matching against a fresh cache entry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..cache import MatchCache
from ..catalog import MANUFACTURER_ROLE, ProductCatalog, escape_like
from .matching import MatchResult, find_matching_manufacturers, persist_matches

logger = logging.getLogger(__name__)

VALID_STATUSES = ("draft", "active", "in_review", "paused", "completed", "cancelled")
DEFAULT_LOCATION = ["Global"]
REQUIREMENT_FIELDS = (
    "name", "description", "selected_product", "volume", "units",
    "packaging", "location", "allergen", "certification", "additional",
)
RECENT_ACTIVITY_LIMIT = 5


class ProjectError(Exception):
    """Base error for project operations."""
    pass


class ProjectNotFoundError(ProjectError):
    pass


class ManufacturerNotFoundError(ProjectError):
    pass


class ProjectValidationError(ProjectError):
    pass


@dataclass
class ProjectWithMatches:
    """A stored project together with the matches computed for it."""
    project: models.Project
    matches: list[MatchResult]


@dataclass
class ProjectAnalytics:
    """Per-owner project summary."""
    total_projects: int
    status_breakdown: dict[str, int]
    total_matches: int
    contacted_manufacturers: int
    recent_activity: list[models.Project]

    def count(self, status: str) -> int:
        return self.status_breakdown.get(status, 0)


def _timeline_event(event: str, description: str) -> dict[str, str]:
    return {
        "event": event,
        "date": datetime.utcnow().isoformat(),
        "description": description,
    }


def _append_timeline(project: models.Project, event: str, description: str) -> None:
    # JSON columns only track reassignment
    project.timeline = [*(project.timeline or []), _timeline_event(event, description)]


async def get_owned_project(
    session: AsyncSession,
    project_id: int,
    owner_id: int,
) -> models.Project:
    """Load a project visible to its owner only."""
    query = select(models.Project).where(
        models.Project.id == project_id,
        models.Project.owner_id == owner_id,
    )
    project = (await session.execute(query)).scalar_one_or_none()
    if project is None:
        raise ProjectNotFoundError(f"Project {project_id} not found")
    return project


async def create_project(
    session: AsyncSession,
    owner_id: int,
    data: dict[str, Any],
    catalog: ProductCatalog,
    *,
    cache: MatchCache | None = None,
) -> ProjectWithMatches:
    """Create a project, run matching once and record pending matches.

    Args:
        session: Database session
        owner_id: Brand account creating the project
        data: Validated project fields
        catalog: Product catalog used by the matching criteria
        cache: Optional match result cache

    Returns:
        ProjectWithMatches with the stored project and its matches
    """
    status = data.get("status")
    if status not in VALID_STATUSES:
        status = "draft"

    project = models.Project(
        owner_id=owner_id,
        name=data["name"].strip(),
        description=data["description"].strip(),
        status=status,
        selected_product=data.get("selected_product"),
        volume=data["volume"],
        units=data["units"],
        packaging=list(data.get("packaging") or []),
        location=list(data.get("location") or DEFAULT_LOCATION),
        allergen=list(data.get("allergen") or []),
        certification=list(data.get("certification") or []),
        additional=(data.get("additional") or "").strip() or None,
        timeline=[_timeline_event("project_created", "Project created and submitted for review")],
    )
    session.add(project)
    await session.commit()
    await session.refresh(project)
    logger.info(f"Created project {project.id} for owner {owner_id}")

    matches = await find_matching_manufacturers(session, project, catalog, cache=cache)
    if matches:
        await persist_matches(session, project, matches)

    return ProjectWithMatches(project=project, matches=matches)


async def list_projects(
    session: AsyncSession,
    owner_id: int,
    status: str | None = None,
    search: str | None = None,
) -> list[models.Project]:
    """Owner's projects, newest first.

    ``status`` of ``None`` or ``"all"`` disables the status filter; ``search``
    matches name or description case-insensitively.
    """
    query = select(models.Project).where(models.Project.owner_id == owner_id)
    if status and status != "all":
        query = query.where(models.Project.status == status)
    if search and search.strip():
        pattern = f"%{escape_like(search.strip())}%"
        query = query.where(or_(
            models.Project.name.ilike(pattern, escape="\\"),
            models.Project.description.ilike(pattern, escape="\\"),
        ))
    query = query.order_by(models.Project.created_at.desc(), models.Project.id.desc())
    return list((await session.execute(query)).scalars().all())


async def update_project(
    session: AsyncSession,
    project: models.Project,
    data: dict[str, Any],
    catalog: ProductCatalog,
    *,
    cache: MatchCache | None = None,
) -> ProjectWithMatches:
    """Apply requirement edits, then re-run matching.

    Only requirement fields are writable here; status has its own
    transition. Cached results for the project are dropped before the
    re-run, and pending matches that no longer qualify are removed.
    """
    changes = {k: v for k, v in data.items() if k in REQUIREMENT_FIELDS}
    for field in ("name", "description", "volume", "units"):
        if field in changes and not (changes[field] or "").strip():
            raise ProjectValidationError(f"Field '{field}' cannot be empty")

    for field, value in changes.items():
        if field in ("name", "description"):
            value = value.strip()
        elif field == "additional":
            value = (value or "").strip() or None
        elif field == "location":
            value = list(value or DEFAULT_LOCATION)
        elif field in ("packaging", "allergen", "certification"):
            value = list(value or [])
        setattr(project, field, value)

    await session.commit()
    await session.refresh(project)
    logger.info(f"Updated project {project.id}: {', '.join(sorted(changes)) or 'no changes'}")

    if cache is not None:
        cache.invalidate_project(project.id)
    matches = await find_matching_manufacturers(session, project, catalog, cache=cache)
    await persist_matches(session, project, matches, prune=True)

    return ProjectWithMatches(project=project, matches=matches)


async def delete_project(
    session: AsyncSession,
    project: models.Project,
    *,
    cache: MatchCache | None = None,
) -> None:
    """Delete a project and its match records in one transaction."""
    project_id = project.id
    try:
        await session.execute(
            delete(models.ProjectManufacturer).where(
                models.ProjectManufacturer.project_id == project_id
            )
        )
        await session.delete(project)
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Failed to delete project {project_id}: {e}")
        raise ProjectError(f"Project deletion failed: {e}") from e

    if cache is not None:
        cache.invalidate_project(project_id)
    logger.info(f"Deleted project {project_id}")


async def update_project_status(
    session: AsyncSession,
    project: models.Project,
    status: str,
    reason: str | None = None,
) -> models.Project:
    if status not in VALID_STATUSES:
        raise ProjectValidationError(
            f"Invalid status. Valid statuses: {', '.join(VALID_STATUSES)}"
        )

    project.status = status
    description = f"Project status changed to {status}"
    if reason:
        description = f"{description}: {reason}"
    _append_timeline(project, f"status_changed_to_{status}", description)

    await session.commit()
    await session.refresh(project)
    logger.info(f"Project {project.id} status → {status}")
    return project


async def contact_manufacturer(
    session: AsyncSession,
    project: models.Project,
    manufacturer_id: int,
    contact_method: str | None = None,
) -> models.ProjectManufacturer:
    """Mark a manufacturer as contacted for a project.

    Manufacturers that were never matched get a record with score 0.
    """
    manufacturer = await session.get(models.User, manufacturer_id)
    if manufacturer is None or manufacturer.role != MANUFACTURER_ROLE:
        raise ManufacturerNotFoundError(f"Manufacturer {manufacturer_id} not found")

    query = select(models.ProjectManufacturer).where(
        models.ProjectManufacturer.project_id == project.id,
        models.ProjectManufacturer.manufacturer_id == manufacturer_id,
    )
    record = (await session.execute(query)).scalar_one_or_none()
    now = datetime.utcnow()

    if record is None:
        record = models.ProjectManufacturer(
            project_id=project.id,
            manufacturer_id=manufacturer_id,
            match_score=0.0,
        )
        session.add(record)
    record.status = "contacted"
    record.contacted_at = now

    _append_timeline(
        project,
        "manufacturer_contacted",
        f"Contacted manufacturer via {contact_method or 'email'}",
    )

    await session.commit()
    await session.refresh(record)
    logger.info(f"Project {project.id}: contacted manufacturer {manufacturer_id}")
    return record


async def project_analytics(session: AsyncSession, owner_id: int) -> ProjectAnalytics:
    """Status counts, match totals and most recently touched projects."""
    owned = models.Project.owner_id == owner_id

    status_rows = await session.execute(
        select(models.Project.status, func.count(models.Project.id))
        .where(owned)
        .group_by(models.Project.status)
    )
    breakdown = {status: count for status, count in status_rows.all()}

    match_rows = await session.execute(
        select(models.ProjectManufacturer.status, func.count(models.ProjectManufacturer.id))
        .join(models.Project, models.Project.id == models.ProjectManufacturer.project_id)
        .where(owned)
        .group_by(models.ProjectManufacturer.status)
    )
    match_counts = {status: count for status, count in match_rows.all()}

    recent = await session.execute(
        select(models.Project)
        .where(owned)
        .order_by(models.Project.updated_at.desc(), models.Project.id.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
    )

    return ProjectAnalytics(
        total_projects=sum(breakdown.values()),
        status_breakdown=breakdown,
        total_matches=sum(match_counts.values()),
        contacted_manufacturers=match_counts.get("contacted", 0),
        recent_activity=list(recent.scalars().all()),
    )
