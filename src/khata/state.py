"""Per-installation state: selected area and stable device identifier."""

import json
import logging
import uuid
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AppState(BaseModel):
    """State that belongs to this installation rather than to the ledger."""

    selected_area_id: Optional[str] = None
    device_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def load(cls, state_file: Path) -> "AppState":
        """Load state from JSON file.

        A missing or unreadable file yields fresh state with a new device id,
        which is persisted on the next save.
        """
        if not state_file.exists():
            logger.info(f"State file {state_file} does not exist, creating new state")
            return cls()

        try:
            with open(state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls(**data)
        except (OSError, json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load state file {state_file}: {e}, using empty state")
            return cls()

    @classmethod
    def load_or_create(cls, state_file: Path) -> "AppState":
        """Load state, persisting it immediately if it was just created."""
        existed = state_file.exists()
        state = cls.load(state_file)
        if not existed:
            state.save(state_file)
        return state

    def save(self, state_file: Path) -> None:
        """Save state to JSON file atomically."""
        state_file.parent.mkdir(parents=True, exist_ok=True)

        temp_file = state_file.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(self.model_dump(), f, indent=2, ensure_ascii=False)

            temp_file.replace(state_file)
            logger.debug(f"Saved state to {state_file}")

        except OSError as e:
            logger.error(f"Failed to save state to {state_file}: {e}")
            temp_file.unlink(missing_ok=True)
            raise
