"""Read-only collaborators used around the matching core.

``ManufacturerDirectory`` loads the candidate pool once per matching run;
``ProductCatalog`` answers per-manufacturer catalog questions for the
industry, packaging, allergen and additional-requirements criteria.
"""
from __future__ import annotations

import logging
from typing import Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import models
from .pipelines.ingest import (
    CandidateManufacturer,
    CatalogRow,
    candidate_from_user,
    catalog_row_from_product,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("active", "online")
MANUFACTURER_ROLE = "manufacturer"


class ProductCatalog(Protocol):
    """Catalog lookup contract; implementations must allow concurrent reads."""

    async def find_by_owner(self, owner_id: int | str) -> list[CatalogRow]:
        ...

    async def find_by_manufacturer_name_like(self, name: str) -> list[CatalogRow]:
        ...

    async def lookup(self, candidate: CandidateManufacturer) -> list[CatalogRow]:
        ...


class CatalogLookupMixin:
    """Owner-id lookup first, legacy manufacturer-name lookup only when empty."""

    async def lookup(self, candidate: CandidateManufacturer) -> list[CatalogRow]:
        rows = await self.find_by_owner(candidate.id)
        if rows:
            return rows
        name = (candidate.company_name or "").strip()
        if not name:
            return []
        rows = await self.find_by_manufacturer_name_like(name)
        if rows:
            logger.debug(f"Catalog for manufacturer {candidate.id} resolved by name '{name}'")
        return rows


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlProductCatalog(CatalogLookupMixin):
    """Product catalog backed by the ``products`` table.

    Each query opens its own session so candidates can be scored
    concurrently without sharing a connection. Transient connection errors
    are retried with backoff before the failure reaches the scorer.
    """

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def find_by_owner(self, owner_id: int | str) -> list[CatalogRow]:
        try:
            owner_key = int(owner_id)
        except (TypeError, ValueError):
            return []
        query = select(models.Product).where(models.Product.owner_id == owner_key)
        return await self._fetch(query)

    async def find_by_manufacturer_name_like(self, name: str) -> list[CatalogRow]:
        pattern = f"%{escape_like(name.strip())}%"
        query = select(models.Product).where(
            models.Product.manufacturer.ilike(pattern, escape="\\")
        )
        return await self._fetch(query)

    @retry(
        retry=retry_if_exception_type((OperationalError, ConnectionError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    async def _fetch(self, query) -> list[CatalogRow]:
        async with self._session_factory() as session:
            result = await session.execute(query.order_by(models.Product.id))
            return [catalog_row_from_product(p) for p in result.scalars().all()]


class ManufacturerDirectory:
    """Loads manufacturer accounts eligible for matching."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_active_candidates(self) -> list[CandidateManufacturer]:
        query = (
            select(models.User)
            .where(
                models.User.role == MANUFACTURER_ROLE,
                models.User.status.in_(ACTIVE_STATUSES),
            )
            .order_by(models.User.id)
        )
        result = await self._session.execute(query)
        users: Sequence[models.User] = result.scalars().all()
        logger.info(f"Loaded {len(users)} active manufacturers")
        return [candidate_from_user(u) for u in users]
