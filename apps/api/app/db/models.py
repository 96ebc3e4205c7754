"""SQLAlchemy 2.0 declarative models mirroring the Supabase-managed schema.

The ``prototypes`` row doubles as the deployment record: ``file_path``
points at the source upload in the private bucket, and
``deployment_status`` / ``deployment_url`` are written exclusively by the
deployment service.

Uses dialect-agnostic types (Uuid, JSON) so models work with both
PostgreSQL (production) and SQLite (tests).
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Text, Uuid, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Deployment state machine:
#   pending -> processing -> deployed | failed
#   pending -> failed           (nothing to process)
DEPLOYMENT_STATUSES = ("pending", "processing", "deployed", "failed")


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )

    prototypes: Mapped[list["Prototype"]] = relationship(
        back_populates="owner", cascade="all, delete-orphan"
    )


class Prototype(Base):
    """An uploaded or linked prototype and its deployment record."""

    __tablename__ = "prototypes"
    __table_args__ = (
        CheckConstraint(
            "deployment_status IN (" + ", ".join(f"'{s}'" for s in DEPLOYMENT_STATUSES) + ")",
            name="prototypes_deployment_status_check",
        ),
        # A reader must never observe `deployed` without a URL.
        CheckConstraint(
            "deployment_status <> 'deployed' OR deployment_url IS NOT NULL",
            name="prototypes_deployed_has_url_check",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # 'react' | 'vanilla' once inspected; 'zip-package' | 'html' | 'external-url'
    # as recorded at upload time.
    tech_stack: Mapped[str] = mapped_column(Text, nullable=False)
    files: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    file_path: Mapped[Optional[str]] = mapped_column(Text)
    preview_url: Mapped[Optional[str]] = mapped_column(Text)
    deployment_status: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'pending'"), default="pending"
    )
    deployment_url: Mapped[Optional[str]] = mapped_column(Text)
    # Stamped by the deployment claim; identifies the owning invocation.
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    figma_link: Mapped[Optional[str]] = mapped_column(Text)
    figma_file_key: Mapped[Optional[str]] = mapped_column(Text)
    figma_file_name: Mapped[Optional[str]] = mapped_column(Text)
    figma_preview_url: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    owner: Mapped["User"] = relationship(back_populates="prototypes")
