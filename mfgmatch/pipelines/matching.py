"""Matching pipeline: Project → Manufacturers with weighted criterion scoring.

``rank_manufacturers`` is the core entry point: it scores every candidate on
all seven criteria, drops weak matches, sorts (stable) and caps the list.
It is read-only and never raises; orchestration failures yield ``[]``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Hashable, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..cache import MatchCache, TTLMatchCache
from ..catalog import ManufacturerDirectory, ProductCatalog
from ..config import settings
from ..rules import CriterionEngine, CriterionScore
from .ingest import (
    CandidateManufacturer,
    ProjectRequirements,
    project_cache_key,
    requirements_from_project,
)
from .normalization import round_half_up

logger = logging.getLogger(__name__)

# (minimum score, label), checked top-down
MATCH_STRENGTH_TIERS = (
    (75, "Excellent Match"),
    (65, "Very Good Match"),
    (55, "Good Match"),
    (45, "Moderate Match"),
    (35, "Fair Match"),
)
BASIC_MATCH = "Basic Match"

result_cache = TTLMatchCache(
    settings.matching.cache_ttl_seconds,
    max_entries=settings.matching.cache_max_entries,
)


@dataclass(frozen=True)
class MatchResult:
    """Scored manufacturer, built fresh for each run."""
    id: int | str
    name: str | None
    company_name: str | None
    email: str | None
    address: str | None
    industry: str | None
    certificates: tuple[str, ...]
    composite_score_100: int
    composite_score_unit: float
    breakdown: Mapping[str, CriterionScore]
    match_strength_label: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "company_name": self.company_name,
            "email": self.email,
            "address": self.address,
            "industry": self.industry,
            "certificates": list(self.certificates),
            "match_score": self.composite_score_unit,
            "match_score_percent": self.composite_score_100,
            "match_details": {name: s.as_dict() for name, s in self.breakdown.items()},
            "match_strength": self.match_strength_label,
        }


class MatchingError(Exception):
    """Raised when matching orchestration around the core fails."""
    pass


def match_strength_label(score: int) -> str:
    for minimum, label in MATCH_STRENGTH_TIERS:
        if score >= minimum:
            return label
    return BASIC_MATCH


def build_match_result(
    candidate: CandidateManufacturer,
    scores: Sequence[CriterionScore],
) -> MatchResult:
    composite = max(0, min(100, round_half_up(sum(s.score for s in scores))))
    return MatchResult(
        id=candidate.id,
        name=candidate.name or candidate.company_name,
        company_name=candidate.company_name or candidate.name,
        email=candidate.email,
        address=candidate.address,
        industry=candidate.industry,
        certificates=candidate.certificates,
        composite_score_100=composite,
        composite_score_unit=composite / 100,
        breakdown=MappingProxyType({s.criterion.value: s for s in scores}),
        match_strength_label=match_strength_label(composite),
    )


async def rank_manufacturers(
    requirements: ProjectRequirements,
    candidate_pool: Sequence[CandidateManufacturer],
    catalog: ProductCatalog,
    *,
    cache: MatchCache | None = None,
    cache_key: Hashable | None = None,
    min_score: int | None = None,
    max_results: int | None = None,
    catalog_timeout: float | None = None,
    max_concurrency: int | None = None,
) -> list[MatchResult]:
    """Rank candidate manufacturers for one project's requirements.

    Workflow:
    1. Return a cached result set when one is fresh for ``cache_key``
    2. Score every candidate on all seven criteria (concurrently)
    3. Keep composite scores >= ``min_score``
    4. Stable sort by composite score, descending
    5. Truncate to ``max_results``

    Args:
        requirements: Project requirements snapshot
        candidate_pool: Active manufacturers, in directory order
        catalog: Product catalog collaborator
        cache: Optional result cache (TTL 0 disables it)
        cache_key: (project id, updated_at) key for the cache
        min_score: Composite threshold (default from config)
        max_results: Result cap (default from config)
        catalog_timeout: Per-lookup timeout in seconds (default from config)
        max_concurrency: Candidates scored at once (default from config)

    Returns:
        Ordered list of MatchResult; empty on orchestration failure
    """
    cfg = settings.matching
    min_score = cfg.min_score if min_score is None else min_score
    max_results = cfg.max_results if max_results is None else max_results
    catalog_timeout = cfg.catalog_timeout_seconds if catalog_timeout is None else catalog_timeout
    max_concurrency = max_concurrency or cfg.max_concurrency

    try:
        if cache is not None and cache_key is not None:
            cached = cache.get(cache_key)
            if cached is not None:
                logger.info(f"Using cached manufacturer matches for {cache_key}")
                return list(cached)

        if not candidate_pool:
            logger.info("No active manufacturers to match")
            return []

        logger.info(f"Scoring {len(candidate_pool)} manufacturers")
        engine = CriterionEngine(catalog, catalog_timeout=catalog_timeout)
        semaphore = asyncio.Semaphore(max_concurrency)

        async def score_candidate(candidate: CandidateManufacturer) -> MatchResult:
            async with semaphore:
                scores = await engine.evaluate(requirements, candidate)
            return build_match_result(candidate, scores)

        # gather keeps input order
        scored = await asyncio.gather(*(score_candidate(c) for c in candidate_pool))

        qualified = [r for r in scored if r.composite_score_100 >= min_score]
        qualified.sort(key=lambda r: r.composite_score_100, reverse=True)
        results = qualified[:max_results]

        logger.info(
            f"Found {len(qualified)} qualified manufacturers, "
            f"returning top {len(results)}"
        )
        for r in results[:5]:
            logger.debug(
                f"Top match: {r.name}, Score: {r.composite_score_100}%, "
                f"Strength: {r.match_strength_label}"
            )

        if cache is not None and cache_key is not None:
            cache.set(cache_key, tuple(results))
        return results

    except Exception as e:
        logger.error(f"Manufacturer matching failed: {e}", exc_info=True)
        return []


async def find_matching_manufacturers(
    session: AsyncSession,
    project: models.Project,
    catalog: ProductCatalog,
    *,
    cache: MatchCache | None = None,
) -> list[MatchResult]:
    """Load the active candidate pool and rank it against a stored project."""
    try:
        candidate_pool = await ManufacturerDirectory(session).find_active_candidates()
    except Exception as e:
        logger.error(f"Failed to load manufacturers for project {project.id}: {e}", exc_info=True)
        return []

    return await rank_manufacturers(
        requirements_from_project(project),
        candidate_pool,
        catalog,
        cache=cache,
        cache_key=project_cache_key(project),
    )


async def persist_matches(
    session: AsyncSession,
    project: models.Project,
    results: Sequence[MatchResult],
    *,
    prune: bool = False,
) -> None:
    """Record pending matches for a project.

    Existing entries keep their contact status and only get a fresh score.
    With ``prune``, pending entries that no longer qualify are removed;
    contacted manufacturers are always kept.
    """
    try:
        query = select(models.ProjectManufacturer).where(
            models.ProjectManufacturer.project_id == project.id
        )
        existing = {
            m.manufacturer_id: m
            for m in (await session.execute(query)).scalars().all()
        }

        for result in results:
            record = existing.get(result.id)
            if record is not None:
                record.match_score = result.composite_score_unit
                continue
            session.add(models.ProjectManufacturer(
                project_id=project.id,
                manufacturer_id=result.id,
                match_score=result.composite_score_unit,
                status="pending",
            ))

        if prune:
            matched_ids = {r.id for r in results}
            for manufacturer_id, record in existing.items():
                if manufacturer_id not in matched_ids and record.status == "pending":
                    await session.delete(record)

        await session.commit()
        logger.info(f"Persisted {len(results)} matches for project {project.id}")

    except Exception as e:
        await session.rollback()
        logger.error(f"Failed to persist matches: {e}")
        raise MatchingError(f"Match persistence failed: {e}") from e


async def load_contact_state(
    session: AsyncSession,
    project_id: int,
) -> dict[int, models.ProjectManufacturer]:
    """Stored per-manufacturer status for a project, keyed by manufacturer id."""
    query = select(models.ProjectManufacturer).where(
        models.ProjectManufacturer.project_id == project_id
    )
    result = await session.execute(query)
    return {m.manufacturer_id: m for m in result.scalars().all()}


def contacted_at_iso(record: models.ProjectManufacturer | None) -> str | None:
    if record is None or record.contacted_at is None:
        return None
    contacted: datetime = record.contacted_at
    return contacted.isoformat()
