"""Criterion engine for weighted manufacturer scoring.

Seven independent criteria each produce a bounded sub-score with a
human-readable explanation. Three of them (industry, packaging, allergens)
verify profile claims against the manufacturer's product catalog; the
additional-requirements criterion only checks that a catalog exists.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from config.match_tables import (
    CATALOG_SYNONYMS,
    FOOD_CATEGORY_KEYWORDS,
    PREFERRED_CATEGORY_KEYWORDS,
    REGION_COUNTRIES,
    REQUIREMENT_KEYWORD_CATEGORIES,
)

from .catalog import ProductCatalog
from .pipelines.ingest import (
    CandidateManufacturer,
    CatalogRow,
    CategoryKind,
    ProjectRequirements,
)
from .pipelines.normalization import (
    canonical_packaging,
    clean_tokens,
    contains_any,
    norm,
    normalize_allergen,
    overlaps,
    parse_volume,
    round_half_up,
)

logger = logging.getLogger(__name__)


class Criterion(str, Enum):
    """Scoring criteria, in evaluation order."""
    LOCATION = "location"
    CERTIFICATIONS = "certifications"
    INDUSTRY = "industry"
    CAPACITY = "capacity"
    PACKAGING = "packaging"
    ALLERGENS = "allergens"
    ADDITIONAL = "additional"


MAX_SCORES: dict[Criterion, int] = {
    Criterion.LOCATION: 15,
    Criterion.CERTIFICATIONS: 20,
    Criterion.INDUSTRY: 25,
    Criterion.CAPACITY: 15,
    Criterion.PACKAGING: 10,
    Criterion.ALLERGENS: 10,
    Criterion.ADDITIONAL: 5,
}

# Tunable constants
LOCATION_UNSPECIFIED = 7
LOCATION_REGIONAL_MAX = 11
CERT_UNSPECIFIED = 10
CERT_TIERS = ((0.8, 20), (0.5, 15))
CERT_PARTIAL = 10
INDUSTRY_DIRECT = 20
INDUSTRY_RELATED = 15
INDUSTRY_GENERAL_FOOD = 10
INDUSTRY_CATALOG_FLOOR = 20
INDUSTRY_PREFERRED_BONUS = 5
CAPACITY_UNSPECIFIED = 7
CAPACITY_UNDECLARED = 6
CAPACITY_TIERS = ((1.0, 15), (0.8, 12), (0.6, 9), (0.4, 6))
CAPACITY_LIMITED = 3
PACKAGING_DEFAULT = 4
PACKAGING_MATCH_FLOOR = 6
ALLERGEN_DEFAULT = 4
ADDITIONAL_UNSPECIFIED = 3
ADDITIONAL_WITH_CATALOG = 2
ADDITIONAL_WITHOUT_CATALOG = 1
ADDITIONAL_ERROR = 2

# Used when a criterion raises past its own handling
CRITERION_FALLBACKS: dict[Criterion, int] = {
    Criterion.LOCATION: 0,
    Criterion.CERTIFICATIONS: 0,
    Criterion.INDUSTRY: 0,
    Criterion.CAPACITY: 0,
    Criterion.PACKAGING: PACKAGING_DEFAULT,
    Criterion.ALLERGENS: ALLERGEN_DEFAULT,
    Criterion.ADDITIONAL: ADDITIONAL_ERROR,
}


@dataclass(frozen=True)
class CriterionScore:
    """Audit entry for a single criterion evaluation."""
    criterion: Criterion
    score: int
    max_score: int
    explanation: str

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "max_score": self.max_score,
            "explanation": self.explanation,
        }


def _result(criterion: Criterion, score: int, details: list[str] | str) -> CriterionScore:
    explanation = details if isinstance(details, str) else "; ".join(details)
    bounded = max(0, min(int(score), MAX_SCORES[criterion]))
    return CriterionScore(criterion, bounded, MAX_SCORES[criterion], explanation)


class CandidateCatalog:
    """Lazily fetched catalog rows for one candidate.

    The lookup runs on first use and successful results are reused by the
    remaining criteria; a failed lookup is retried by the next caller.
    """

    def __init__(
        self,
        catalog: ProductCatalog,
        candidate: CandidateManufacturer,
        timeout: float | None = None,
    ) -> None:
        self._catalog = catalog
        self._candidate = candidate
        self._timeout = timeout
        self._rows: list[CatalogRow] | None = None

    async def rows(self) -> list[CatalogRow]:
        if self._rows is None:
            lookup = self._catalog.lookup(self._candidate)
            if self._timeout:
                self._rows = await asyncio.wait_for(lookup, self._timeout)
            else:
                self._rows = await lookup
        return self._rows


# ==================== LOCATION ====================

def score_location(
    requirements: ProjectRequirements,
    candidate: CandidateManufacturer,
) -> CriterionScore:
    locations = clean_tokens(requirements.locations)
    if not locations:
        return _result(Criterion.LOCATION, LOCATION_UNSPECIFIED, "No specific location required")
    if "global" in locations:
        return _result(Criterion.LOCATION, MAX_SCORES[Criterion.LOCATION], "Global request")

    address = norm(candidate.address)
    if not address:
        return _result(Criterion.LOCATION, 0, "Manufacturer address unknown")

    exact = [loc for loc in locations if loc in address]
    if exact:
        score = round_half_up(MAX_SCORES[Criterion.LOCATION] * len(exact) / len(locations))
        return _result(Criterion.LOCATION, score, f"Exact location match: {', '.join(exact)}")

    regional = [
        loc for loc in locations
        if contains_any(address, REGION_COUNTRIES.get(loc, ()))
    ]
    if regional:
        score = round_half_up(LOCATION_REGIONAL_MAX * len(regional) / len(locations))
        return _result(Criterion.LOCATION, score, f"Regional match: {', '.join(regional)}")

    return _result(Criterion.LOCATION, 0, "No location match")


# ==================== CERTIFICATIONS ====================

def score_certifications(
    requirements: ProjectRequirements,
    candidate: CandidateManufacturer,
) -> CriterionScore:
    required = clean_tokens(requirements.certifications)
    if not required:
        return _result(Criterion.CERTIFICATIONS, CERT_UNSPECIFIED, "No certifications required for project")

    declared = list(candidate.certificates)
    if candidate.settings:
        declared.extend(candidate.settings.certifications)
    held = set(clean_tokens(declared))
    if not held:
        return _result(Criterion.CERTIFICATIONS, 0, "Manufacturer has no certifications")

    matched = [cert for cert in required if any(overlaps(cert, h) for h in held)]
    pct = len(matched) / len(required)
    summary = f"Matched {len(matched)}/{len(required)} certifications"

    for threshold, score in CERT_TIERS:
        if pct >= threshold:
            return _result(Criterion.CERTIFICATIONS, score, summary)
    if pct > 0:
        return _result(Criterion.CERTIFICATIONS, CERT_PARTIAL, f"{summary} (partial match)")
    return _result(Criterion.CERTIFICATIONS, 0, "No certification matches")


# ==================== INDUSTRY / PRODUCT CATEGORY ====================

def _industry_text_score(product_name: str, kind: CategoryKind | None, industry: str) -> tuple[int, str | None]:
    if not industry:
        return 0, None
    if overlaps(industry, product_name):
        return INDUSTRY_DIRECT, "Direct industry match"

    for category, keywords in FOOD_CATEGORY_KEYWORDS.items():
        product_in_category = contains_any(product_name, keywords)
        industry_in_category = category in industry or contains_any(industry, keywords)
        if product_in_category and industry_in_category:
            return INDUSTRY_RELATED, f"Related industry match: {category}"

    if kind in (CategoryKind.CATEGORY, CategoryKind.FOODTYPE) and "food" in industry:
        return INDUSTRY_GENERAL_FOOD, "General food manufacturing match"
    return 0, None


def catalog_matches_product(product_name: str, rows: list[CatalogRow]) -> bool:
    """Whether any catalog category / food type covers the requested product."""
    tokens = {t for row in rows for t in (norm(row.category), norm(row.food_type)) if t}
    if not tokens:
        return False
    if any(overlaps(product_name, token) for token in tokens):
        return True
    for synonyms in CATALOG_SYNONYMS.values():
        if contains_any(product_name, synonyms) and any(
            contains_any(token, synonyms) for token in tokens
        ):
            return True
    return False


def preferred_category_matches(category: str, product_name: str) -> bool:
    if overlaps(product_name, category):
        return True
    for main_category, keywords in PREFERRED_CATEGORY_KEYWORDS.items():
        if main_category in category and contains_any(product_name, keywords):
            return True
        if main_category in product_name and contains_any(category, keywords):
            return True
    return False


async def score_industry(
    requirements: ProjectRequirements,
    candidate: CandidateManufacturer,
    catalog: CandidateCatalog,
) -> CriterionScore:
    product = requirements.selected_product
    product_name = norm(product.name) if product else ""
    if not product_name:
        return _result(Criterion.INDUSTRY, 0, "No product selected")

    score, detail = _industry_text_score(product_name, product.category_kind, norm(candidate.industry))
    details = [detail] if detail else []

    try:
        rows = await catalog.rows()
    except Exception as e:
        logger.warning(f"Catalog lookup failed for manufacturer {candidate.id} (industry): {e!r}")
        details.append("Product catalog unavailable")
    else:
        if catalog_matches_product(product_name, rows):
            score = max(score, INDUSTRY_CATALOG_FLOOR)
            details.append("Product catalog match")

    preferred = clean_tokens(candidate.settings.preferred_categories) if candidate.settings else []
    if any(preferred_category_matches(cat, product_name) for cat in preferred):
        bonus = min(INDUSTRY_PREFERRED_BONUS, MAX_SCORES[Criterion.INDUSTRY] - score)
        if bonus > 0:
            score += bonus
            details.append("Matches manufacturer preferred category")

    return _result(
        Criterion.INDUSTRY,
        min(MAX_SCORES[Criterion.INDUSTRY], score),
        details or "No industry match",
    )


# ==================== PRODUCTION CAPACITY ====================

def score_capacity(
    requirements: ProjectRequirements,
    candidate: CandidateManufacturer,
) -> CriterionScore:
    if not requirements.volume or not requirements.volume.strip():
        return _result(Criterion.CAPACITY, CAPACITY_UNSPECIFIED, "Project volume not specified")

    volume = parse_volume(requirements.volume)
    details = [f"Project volume: {volume} units"]

    capacity = candidate.settings.production_capacity if candidate.settings else None
    if capacity is None:
        details.append("Manufacturer capacity not specified")
        return _result(Criterion.CAPACITY, CAPACITY_UNDECLARED, details)

    details.append(f"Manufacturer capacity: {capacity:g} units")
    for ratio, score in CAPACITY_TIERS:
        if capacity >= volume * ratio:
            details.append(f"Capacity covers {int(ratio * 100)}%+ of volume")
            return _result(Criterion.CAPACITY, score, details)
    if capacity > 0:
        details.append("Limited capacity match")
        return _result(Criterion.CAPACITY, CAPACITY_LIMITED, details)
    details.append("No production capacity")
    return _result(Criterion.CAPACITY, 0, details)


# ==================== PACKAGING ====================

async def score_packaging(
    requirements: ProjectRequirements,
    candidate: CandidateManufacturer,
    catalog: CandidateCatalog,
) -> CriterionScore:
    required = clean_tokens(requirements.packaging)
    if not required:
        return _result(Criterion.PACKAGING, PACKAGING_DEFAULT, "No packaging requirement")

    try:
        rows = await catalog.rows()
    except Exception as e:
        logger.warning(f"Catalog lookup failed for manufacturer {candidate.id} (packaging): {e!r}")
        return _result(Criterion.PACKAGING, PACKAGING_DEFAULT, "Product catalog unavailable")

    if not rows:
        return _result(Criterion.PACKAGING, PACKAGING_DEFAULT, "No product data available")

    offered = clean_tokens(row.packaging_type for row in rows)
    buckets = {canonical_packaging(p) for p in offered}
    matched = [
        req for req in required
        if canonical_packaging(req) in buckets or any(req in p for p in offered)
    ]
    if not matched:
        return _result(Criterion.PACKAGING, 0, "No packaging match")

    score = max(PACKAGING_MATCH_FLOOR, round_half_up(MAX_SCORES[Criterion.PACKAGING] * len(matched) / len(required)))
    return _result(
        Criterion.PACKAGING,
        score,
        f"Packaging match {len(matched)}/{len(required)}: {', '.join(matched)}",
    )


# ==================== ALLERGENS ====================

async def score_allergens(
    requirements: ProjectRequirements,
    candidate: CandidateManufacturer,
    catalog: CandidateCatalog,
) -> CriterionScore:
    tokens = [t for t in (normalize_allergen(a) for a in requirements.allergen_requirements) if t]
    if not tokens:
        return _result(Criterion.ALLERGENS, ALLERGEN_DEFAULT, "No allergen requirements")

    try:
        rows = await catalog.rows()
    except Exception as e:
        logger.warning(f"Catalog lookup failed for manufacturer {candidate.id} (allergens): {e!r}")
        return _result(Criterion.ALLERGENS, ALLERGEN_DEFAULT, "Product catalog unavailable")

    if not rows:
        return _result(Criterion.ALLERGENS, ALLERGEN_DEFAULT, "No product data available")

    listed = {a for row in rows for a in clean_tokens(row.allergens)}
    matched = sorted({t for t in tokens if t in listed})
    if not matched:
        return _result(Criterion.ALLERGENS, 0, "No allergen information matches")

    score = round_half_up(MAX_SCORES[Criterion.ALLERGENS] * len(matched) / len(tokens))
    return _result(Criterion.ALLERGENS, score, f"Allergen data match: {', '.join(matched)}")


# ==================== ADDITIONAL REQUIREMENTS ====================

async def score_additional(
    requirements: ProjectRequirements,
    candidate: CandidateManufacturer,
    catalog: CandidateCatalog,
) -> CriterionScore:
    try:
        text = norm(requirements.additional_requirements)
        if not text:
            return _result(Criterion.ADDITIONAL, ADDITIONAL_UNSPECIFIED, "No additional requirements")

        profile_text = " ".join(
            norm(part)
            for part in (candidate.description, candidate.company_description, candidate.industry)
        )
        matched = [
            category
            for category, keywords in REQUIREMENT_KEYWORD_CATEGORIES.items()
            if any(k in text and k in profile_text for k in keywords)
        ]
        if matched:
            return _result(
                Criterion.ADDITIONAL,
                min(len(matched), MAX_SCORES[Criterion.ADDITIONAL]),
                f"Matches requirement themes: {', '.join(matched)}",
            )

        if await catalog.rows():
            return _result(Criterion.ADDITIONAL, ADDITIONAL_WITH_CATALOG, "Has product catalog")
        return _result(Criterion.ADDITIONAL, ADDITIONAL_WITHOUT_CATALOG, "No requirement themes matched")
    except Exception as e:
        logger.warning(f"Additional requirements analysis failed for manufacturer {candidate.id}: {e!r}")
        return _result(Criterion.ADDITIONAL, ADDITIONAL_ERROR, "Additional requirements not evaluated")


# ==================== ENGINE ====================

SyncScorer = Callable[[ProjectRequirements, CandidateManufacturer], CriterionScore]
AsyncScorer = Callable[
    [ProjectRequirements, CandidateManufacturer, CandidateCatalog],
    Awaitable[CriterionScore],
]


class CriterionEngine:
    """Evaluates all seven criteria for a candidate.

    A criterion that raises past its own handling is logged and replaced by
    its fallback score, so every candidate always carries a full breakdown.
    """

    sync_scorers: tuple[tuple[Criterion, SyncScorer], ...] = (
        (Criterion.LOCATION, score_location),
        (Criterion.CERTIFICATIONS, score_certifications),
        (Criterion.CAPACITY, score_capacity),
    )
    async_scorers: tuple[tuple[Criterion, AsyncScorer], ...] = (
        (Criterion.INDUSTRY, score_industry),
        (Criterion.PACKAGING, score_packaging),
        (Criterion.ALLERGENS, score_allergens),
        (Criterion.ADDITIONAL, score_additional),
    )

    def __init__(self, catalog: ProductCatalog, *, catalog_timeout: float | None = None) -> None:
        self.catalog = catalog
        self.catalog_timeout = catalog_timeout

    async def evaluate(
        self,
        requirements: ProjectRequirements,
        candidate: CandidateManufacturer,
    ) -> tuple[CriterionScore, ...]:
        """Score one candidate; results come back in ``Criterion`` order."""
        candidate_catalog = CandidateCatalog(self.catalog, candidate, self.catalog_timeout)
        scores: dict[Criterion, CriterionScore] = {}

        for criterion, scorer in self.sync_scorers:
            try:
                scores[criterion] = scorer(requirements, candidate)
            except Exception as e:
                scores[criterion] = self._fallback(criterion, candidate, e)

        for criterion, scorer in self.async_scorers:
            try:
                scores[criterion] = await scorer(requirements, candidate, candidate_catalog)
            except Exception as e:
                scores[criterion] = self._fallback(criterion, candidate, e)

        return tuple(scores[c] for c in Criterion)

    @staticmethod
    def _fallback(criterion: Criterion, candidate: CandidateManufacturer, error: Exception) -> CriterionScore:
        logger.error(f"Criterion {criterion.value} failed for manufacturer {candidate.id}: {error!r}")
        return _result(criterion, CRITERION_FALLBACKS[criterion], f"Evaluation error: {error}")
