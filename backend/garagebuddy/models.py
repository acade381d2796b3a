"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Every table derives from `AuditedModel`, which carries the audit
timestamps maintained by the generic repository: `created_on` is stamped
when an entity is added and `modified_on` on every update.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return `value` as an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores UTC instants and always hands back aware datetimes.

    SQLite keeps no offset, so values are written as naive UTC and tagged
    with UTC again when loaded.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        return as_utc(value)


class AuditedModel(SQLModel):
    """Columns shared by every table. Timestamps are aware UTC."""
    created_on: Optional[datetime] = Field(default=None, nullable=False, sa_type=UTCDateTime)
    modified_on: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)


class Garage(AuditedModel, table=True):
    """A garage (workshop) managed through the application."""
    __tablename__ = "garages"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True, max_length=100)
    address: str = Field(max_length=200)
    email: str = Field(max_length=100)
    phone: str = Field(max_length=20)
    description: Optional[str] = Field(default=None, max_length=1000)
    image_url: Optional[str] = None
    working_hours: Optional[str] = Field(default=None, max_length=50)
    coordinates: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True


class Brand(AuditedModel, table=True):
    """Vehicle brand reference data."""
    __tablename__ = "brands"

    id: Optional[int] = Field(default=None, primary_key=True)
    brand_name: str = Field(index=True, unique=True, max_length=50)
    is_seeded: bool = False


class GearboxType(AuditedModel, table=True):
    """Gearbox type reference data (manual, automatic, ...)."""
    __tablename__ = "gearbox_types"

    id: Optional[int] = Field(default=None, primary_key=True)
    gearbox_type_name: str = Field(index=True, unique=True, max_length=50)
    is_seeded: bool = False


class ApplicationUser(AuditedModel, table=True):
    """A registered account.

    Fields:
    - `normalized_user_name` / `normalized_email`: upper-cased lookup keys
    - `password_hash`: hashed password string (never store plaintext)
    - `security_stamp`: rotated whenever credentials change; reset tokens
      embed it so they stop working after a password change
    - `lockout_end`: UTC instant until which sign-in is refused
    """
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_name: str
    normalized_user_name: str = Field(index=True, unique=True)
    email: Optional[str] = None
    normalized_email: Optional[str] = Field(default=None, index=True)
    email_confirmed: bool = False
    password_hash: Optional[str] = None
    security_stamp: str = Field(default_factory=lambda: uuid.uuid4().hex)
    lockout_enabled: bool = True
    lockout_end: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    access_failed_count: int = 0
    two_factor_enabled: bool = False


class ApplicationRole(AuditedModel, table=True):
    """A named role that can be granted to users."""
    __tablename__ = "roles"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    normalized_name: str = Field(index=True, unique=True)


class ApplicationUserRole(AuditedModel, table=True):
    """Membership of a user in a role."""
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    role_id: uuid.UUID = Field(foreign_key="roles.id", index=True)
