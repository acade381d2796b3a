"""Pydantic service models.

Services accept and return these shapes instead of table models, which
keeps callers away from tracked entities and validates input before any
repository call.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GarageServiceModel(BaseModel):
    """Input/output shape of a garage."""
    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)

    id: Optional[uuid.UUID] = None
    name: str = Field(min_length=3, max_length=100)
    address: str = Field(min_length=3, max_length=200)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=100)
    phone: str = Field(min_length=5, max_length=20)
    description: Optional[str] = Field(default=None, max_length=1000)
    image_url: Optional[str] = None
    working_hours: Optional[str] = Field(default=None, max_length=50)
    coordinates: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True


class GearboxTypeServiceModel(BaseModel):
    """Gearbox type with its audit timestamps."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    gearbox_type_name: str
    is_seeded: bool = False
    created_on: Optional[datetime] = None
    modified_on: Optional[datetime] = None


class GearboxTypeSelectServiceModel(BaseModel):
    """Id/name pair for select lists."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    gearbox_type_name: str


class BrandSelectServiceModel(BaseModel):
    """Id/name pair for select lists."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    brand_name: str
