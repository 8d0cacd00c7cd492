"""Flat JSON collections for areas, villages and customers."""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel

from .exceptions import VillageNotFoundError
from .models.registry import Area, Customer, Village

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JsonCollection(Generic[T]):
    """A list of records stored as one JSON array, rewritten atomically."""

    def __init__(self, path: Path, model: type[T]):
        self.path = path
        self.model = model

    def load(self) -> list[T]:
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8").strip()
        if not text:
            return []
        return [self.model.model_validate(item) for item in json.loads(text)]

    def save(self, items: list[T]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [item.model_dump(mode="json", by_alias=True) for item in items]

        temp_file = self.path.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_file.replace(self.path)
        except OSError as e:
            logger.error(f"Failed to save {self.path}: {e}")
            temp_file.unlink(missing_ok=True)
            raise


class AreaStore:
    def __init__(self, path: Path, clock: Callable[[], datetime] = _utc_now):
        self.collection = JsonCollection(path, Area)
        self.clock = clock

    def all(self) -> list[Area]:
        return self.collection.load()

    def get(self, area_id: str) -> Optional[Area]:
        return next((a for a in self.all() if a.id == area_id), None)

    def create(self, name: str, is_onboarding: bool) -> Area:
        areas = self.all()
        area = Area(id=_new_id(), name=name, created_at=self.clock(), is_onboarding=is_onboarding)
        areas.append(area)
        self.collection.save(areas)
        logger.info(f"Created area {area.id} ({name})")
        return area

    def delete(self, area_id: str) -> None:
        self.collection.save([a for a in self.all() if a.id != area_id])


class VillageStore:
    def __init__(self, path: Path, clock: Callable[[], datetime] = _utc_now):
        self.collection = JsonCollection(path, Village)
        self.clock = clock

    def all(self) -> list[Village]:
        return self.collection.load()

    def by_area(self, area_id: str) -> list[Village]:
        return [v for v in self.all() if v.area_id == area_id]

    def get(self, village_id: str) -> Optional[Village]:
        return next((v for v in self.all() if v.id == village_id), None)

    def create(self, area_id: str, name: str) -> Village:
        villages = self.all()
        village = Village(
            id=_new_id(),
            area_id=area_id,
            name=name,
            next_serial_number=1,
            created_at=self.clock(),
        )
        villages.append(village)
        self.collection.save(villages)
        return village

    def allocate_serial(self, village_id: str) -> int:
        """Return the village's next serial number and advance the counter.

        Raises:
            VillageNotFoundError: If the village does not exist
        """
        villages = self.all()
        village = next((v for v in villages if v.id == village_id), None)
        if village is None:
            raise VillageNotFoundError(village_id)
        serial = village.next_serial_number
        village.next_serial_number += 1
        self.collection.save(villages)
        return serial

    def delete(self, village_id: str) -> None:
        self.collection.save([v for v in self.all() if v.id != village_id])

    def delete_by_area(self, area_id: str) -> int:
        villages = self.all()
        kept = [v for v in villages if v.area_id != area_id]
        self.collection.save(kept)
        return len(villages) - len(kept)


class CustomerStore:
    def __init__(self, path: Path, clock: Callable[[], datetime] = _utc_now):
        self.collection = JsonCollection(path, Customer)
        self.clock = clock

    def all(self) -> list[Customer]:
        return self.collection.load()

    def by_area(self, area_id: str) -> list[Customer]:
        return [c for c in self.all() if c.area_id == area_id]

    def get(self, customer_id: str) -> Optional[Customer]:
        return next((c for c in self.all() if c.id == customer_id), None)

    def create(
        self,
        *,
        area_id: str,
        village_id: str,
        village_name: str,
        name: str,
        phone: str,
        serial_number: int,
    ) -> Customer:
        customers = self.all()
        customer = Customer(
            id=_new_id(),
            area_id=area_id,
            village_id=village_id,
            village_name=village_name,
            name=name,
            phone=phone,
            serial_number=serial_number,
            created_at=self.clock(),
        )
        customers.append(customer)
        self.collection.save(customers)
        return customer

    def delete(self, customer_id: str) -> None:
        self.collection.save([c for c in self.all() if c.id != customer_id])

    def delete_by_area(self, area_id: str) -> int:
        customers = self.all()
        kept = [c for c in customers if c.area_id != area_id]
        self.collection.save(kept)
        return len(customers) - len(kept)
