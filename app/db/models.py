"""SQLAlchemy database models."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.mysql import CHAR
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys.

    Returns:
        str: UUID as 36-character string.
    """
    return str(uuid4())


class UserRole(str, enum.Enum):
    """User role enumeration."""

    ADMIN = "admin"
    TECHNICIAN = "technician"
    VIEWER = "viewer"


class User(Base):
    """User model.

    Only the attributes the equipment registry needs for provenance are
    mapped here; account management lives outside this service.

    Attributes:
        id: Primary key UUID.
        email: User email.
        full_name: User's full name.
        role: User role (admin/technician/viewer).
        is_active: Whether the user is active.
        created_at: Creation timestamp.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=lambda x: [e.value for e in x]), default=UserRole.VIEWER
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    created_equipment: Mapped[list["Equipment"]] = relationship(
        "Equipment", back_populates="creator"
    )


class Equipment(Base):
    """Equipment registry entry.

    Columns beyond the ones declared here may exist in the database: the
    spreadsheet import adds nullable TEXT columns for headers that match
    no known field. Those are reached through table reflection, never
    through this class.

    Attributes:
        id: Primary key UUID.
        name: Display name (required).
        model: Model number or product name.
        serial_number: Manufacturer serial number.
        manufacturer: Manufacturer, brand or vendor.
        location: Room, building or site.
        description: Free-text description.
        qr_code: Unique external identifier printed on asset labels.
        image_url: Optional photo URL.
        is_active: Soft-delete flag.
        created_by: Foreign key to the user who created the record.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "equipment"
    __table_args__ = (
        Index("ix_equipment_serial_number", "serial_number"),
        Index("ix_equipment_location", "location"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    serial_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    qr_code: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    creator: Mapped["User | None"] = relationship("User", back_populates="created_equipment")
