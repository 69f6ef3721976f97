"""Ingestion boundary: immutable snapshots used by the matching criteria.

ORM rows (or plain dicts from fixtures / JSON) are converted here into frozen
dataclasses so every criterion works on one uniform shape. Legacy data stores
``certificates`` either as a single string or as a list; both are normalized
into a tuple of strings before any scoring runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping

from .. import models


class CategoryKind(str, Enum):
    """What the brand picked as the project's product."""
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"
    FOODTYPE = "FOODTYPE"


@dataclass(frozen=True)
class SelectedProduct:
    name: str
    category_kind: CategoryKind | None = None


@dataclass(frozen=True)
class ProjectRequirements:
    """Brand project requirements; every optional field may be empty."""
    locations: tuple[str, ...] = ()
    certifications: tuple[str, ...] = ()
    selected_product: SelectedProduct | None = None
    volume: str | None = None
    packaging: tuple[str, ...] = ()
    allergen_requirements: tuple[str, ...] = ()
    additional_requirements: str | None = None


@dataclass(frozen=True)
class ManufacturerSettings:
    certifications: tuple[str, ...] = ()
    preferred_categories: tuple[str, ...] = ()
    production_capacity: float | None = None


@dataclass(frozen=True)
class CandidateManufacturer:
    """Read-only snapshot of a manufacturer account for one matching run."""
    id: int | str
    name: str | None = None
    company_name: str | None = None
    email: str | None = None
    address: str | None = None
    industry: str | None = None
    certificates: tuple[str, ...] = ()
    settings: ManufacturerSettings | None = None
    description: str | None = None
    company_description: str | None = None


@dataclass(frozen=True)
class CatalogRow:
    """One product record belonging to a manufacturer."""
    category: str | None = None
    food_type: str | None = None
    packaging_type: str | None = None
    allergens: tuple[str, ...] = field(default_factory=tuple)


def _str_tuple(values: Any) -> tuple[str, ...]:
    """Accept a single string, an iterable of strings, or nothing."""
    if values is None:
        return ()
    if isinstance(values, str):
        return (values,) if values.strip() else ()
    if isinstance(values, Iterable):
        return tuple(v for v in values if isinstance(v, str) and v.strip())
    return ()


def _opt_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _capacity(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _category_kind(value: Any) -> CategoryKind | None:
    if isinstance(value, CategoryKind):
        return value
    if isinstance(value, str):
        try:
            return CategoryKind(value.strip().upper())
        except ValueError:
            return None
    return None


def settings_from_dict(data: Mapping[str, Any] | None) -> ManufacturerSettings | None:
    if not data:
        return None
    return ManufacturerSettings(
        certifications=_str_tuple(data.get("certifications")),
        preferred_categories=_str_tuple(
            data.get("preferred_categories", data.get("preferredCategories"))
        ),
        production_capacity=_capacity(
            data.get("production_capacity", data.get("productionCapacity"))
        ),
    )


def selected_product_from_dict(data: Mapping[str, Any] | None) -> SelectedProduct | None:
    if not data:
        return None
    name = _opt_str(data.get("name"))
    if name is None:
        return None
    kind = data.get("category_kind", data.get("type"))
    return SelectedProduct(name=name, category_kind=_category_kind(kind))


def requirements_from_dict(data: Mapping[str, Any]) -> ProjectRequirements:
    """Build requirements from a project-shaped mapping.

    Accepts both the stored project field names (``location``,
    ``certification``, ``allergen``, ``additional``) and the requirement
    names.
    """
    volume = data.get("volume")
    return ProjectRequirements(
        locations=_str_tuple(data.get("locations", data.get("location"))),
        certifications=_str_tuple(data.get("certifications", data.get("certification"))),
        selected_product=selected_product_from_dict(data.get("selected_product")),
        volume=str(volume) if volume not in (None, "") else None,
        packaging=_str_tuple(data.get("packaging")),
        allergen_requirements=_str_tuple(
            data.get("allergen_requirements", data.get("allergen"))
        ),
        additional_requirements=_opt_str(
            data.get("additional_requirements", data.get("additional"))
        ),
    )


def requirements_from_project(project: models.Project) -> ProjectRequirements:
    return requirements_from_dict({
        "location": project.location,
        "certification": project.certification,
        "selected_product": project.selected_product,
        "volume": project.volume,
        "packaging": project.packaging,
        "allergen": project.allergen,
        "additional": project.additional,
    })


def candidate_from_dict(data: Mapping[str, Any]) -> CandidateManufacturer:
    return CandidateManufacturer(
        id=data["id"],
        name=_opt_str(data.get("name")),
        company_name=_opt_str(data.get("company_name")),
        email=_opt_str(data.get("email")),
        address=_opt_str(data.get("address")),
        industry=_opt_str(data.get("industry")),
        certificates=_str_tuple(data.get("certificates")),
        settings=settings_from_dict(data.get("manufacturer_settings")),
        description=_opt_str(data.get("description")),
        company_description=_opt_str(data.get("company_description")),
    )


def candidate_from_user(user: models.User) -> CandidateManufacturer:
    return candidate_from_dict({
        "id": user.id,
        "name": user.name,
        "company_name": user.company_name,
        "email": user.email,
        "address": user.address,
        "industry": user.industry,
        "certificates": user.certificates,
        "manufacturer_settings": user.manufacturer_settings,
        "description": user.description,
        "company_description": user.company_description,
    })


def catalog_row_from_product(product: models.Product) -> CatalogRow:
    return CatalogRow(
        category=_opt_str(product.category),
        food_type=_opt_str(product.food_type),
        packaging_type=_opt_str(product.packaging_type),
        allergens=_str_tuple(product.allergens),
    )


def project_cache_key(project: models.Project) -> tuple[int, str]:
    """(project id, last-modified timestamp) key for match result caching."""
    updated: datetime = project.updated_at
    return project.id, updated.isoformat()
