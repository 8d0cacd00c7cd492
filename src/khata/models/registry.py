"""Pydantic models for areas, villages and customers.

Persisted as flat JSON collections; cross-references are by id only.
"""

from datetime import datetime

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class Area(BaseModel):
    """Top-level partition of the ledger."""

    id: str
    name: str
    created_at: datetime
    is_onboarding: bool = False

    model_config = {**_CAMEL, "frozen": True}


class Village(BaseModel):
    """Sub-grouping of customers within an area.

    Owns the serial counter for its customers; ``next_serial_number`` only
    ever increases, even when customers are deleted.
    """

    id: str
    area_id: str
    name: str
    next_serial_number: int = Field(default=1, ge=1)
    created_at: datetime

    model_config = {**_CAMEL, "frozen": False}


class Customer(BaseModel):
    """Borrower within a village. ``serial_number`` is assigned once."""

    id: str
    area_id: str
    village_id: str
    village_name: str
    name: str
    phone: str = ""
    serial_number: int
    created_at: datetime

    model_config = {**_CAMEL, "frozen": True}
