"""Path management for the Khata data directory."""

from pathlib import Path

from .config import DATA_MARKER, KhataConfig


class DataPaths:
    """Manages paths within a Khata data directory.

    Every entity kind persists as its own flat collection; cross-references
    between them are by id only.
    """

    def __init__(self, data_root: Path):
        """Initialize data paths from root directory.

        Args:
            data_root: Root directory of the Khata data
        """
        self.root = data_root

        # Marker / config snapshot
        self.config_file = data_root / DATA_MARKER

        # Installation state (selected area, device id)
        self.state_file = data_root / "state.json"

        # Registry collections
        self.areas_file = data_root / "areas.json"
        self.villages_file = data_root / "villages.json"
        self.customers_file = data_root / "customers.json"

        # Append-only event log
        self.events_file = data_root / "events.jsonl"

    @classmethod
    def from_config(cls, config: KhataConfig) -> "DataPaths":
        """Create DataPaths from a KhataConfig."""
        return cls(config.data_path)

    def is_initialized(self) -> bool:
        return self.config_file.exists()

    def get_all_files(self) -> list[Path]:
        """Get list of collection files that ``khata init`` creates."""
        return [
            self.areas_file,
            self.villages_file,
            self.customers_file,
            self.events_file,
        ]
