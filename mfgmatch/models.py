"""Core SQLAlchemy models (2.x style) for the marketplace schema.

List-shaped and nested document fields (certificates, manufacturer settings,
project requirements, timeline) are stored as JSON columns.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class User(Base):
    """Accounts table (brands, manufacturers, suppliers)."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String(255))
    company_name: Mapped[str | None] = mapped_column(String(255), index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), default="active", nullable=False, index=True)
    address: Mapped[str | None] = mapped_column(String(500))
    industry: Mapped[str | None] = mapped_column(String(255))
    # Legacy rows hold either a single string or a list of strings
    certificates: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    description: Mapped[str | None] = mapped_column(Text)
    company_description: Mapped[str | None] = mapped_column(Text)
    manufacturer_settings: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    products: Mapped[list[Product]] = relationship("Product", back_populates="owner")

    __table_args__ = (
        Index("ix_users_role_status", "role", "status"),
    )


class Product(Base):
    """Manufacturer product catalog rows."""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    # Free-text manufacturer name used by legacy rows without an owner
    manufacturer: Mapped[str | None] = mapped_column(String(255), index=True)
    category: Mapped[str | None] = mapped_column(String(255))
    food_type: Mapped[str | None] = mapped_column(String(255))
    packaging_type: Mapped[str | None] = mapped_column(String(255))
    allergens: Mapped[list[str] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    owner: Mapped[User | None] = relationship("User", back_populates="products")


class Project(Base):
    """Brand manufacturing projects."""
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="draft", nullable=False)
    selected_product: Mapped[dict | None] = mapped_column(JSON)
    volume: Mapped[str] = mapped_column(String(100), nullable=False)
    units: Mapped[str] = mapped_column(String(100), nullable=False)
    packaging: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    location: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    allergen: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    certification: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    additional: Mapped[str | None] = mapped_column(Text)
    timeline: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    matches: Mapped[list[ProjectManufacturer]] = relationship(
        "ProjectManufacturer",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_projects_owner_status", "owner_id", "status"),
        Index("ix_projects_created_at", "created_at"),
    )


class ProjectManufacturer(Base):
    """Per-project match and contact state for one manufacturer."""
    __tablename__ = "project_manufacturers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    manufacturer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    match_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    contacted_at: Mapped[datetime | None] = mapped_column()

    project: Mapped[Project] = relationship("Project", back_populates="matches")

    __table_args__ = (
        Index("ix_project_manufacturers_pair", "project_id", "manufacturer_id", unique=True),
    )
