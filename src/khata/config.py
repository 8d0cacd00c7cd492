"""Configuration management for Khata."""

import os
from pathlib import Path
from typing import Literal, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

DATA_MARKER = "config.yaml"
DEFAULT_DATA_DIR = "khata_data"


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent
        if parent_dir == current_dir:
            # No repo found, return original directory
            return start_dir

        current_dir = parent_dir


def _load_repo_config_data(repo_root: Path) -> Optional[dict]:
    """Load repo config data from .khata/config.toml if it exists."""
    config_file = repo_root / ".khata" / "config.toml"

    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        # A malformed repo config is ignored
        return None


def _get_repo_config_value(data: Optional[dict], keys: list[str]) -> Optional[str]:
    """Safely get a nested string value from repo config."""
    if not data:
        return None
    current = data
    for key in keys:
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    if isinstance(current, str):
        return current
    return None


def _has_data_markers(data_path: Path) -> bool:
    """Check if a directory has been initialized as a Khata data root."""
    return (data_path / DATA_MARKER).exists()


def resolve_data_root(
    mode: Literal["use_existing", "create_ok"],
    cli_data_path: Optional[str] = None,
) -> Path:
    """Resolve the data root with the following precedence:

    1. CLI --data option (if provided)
    2. repo-local .khata/config.toml ``data_root`` (walk upward from CWD)
    3. KHATA_DATA environment variable
    4. Auto-discovery by walking up from CWD looking for data markers
    5. Error (use_existing) or ./khata_data (create_ok)

    Raises:
        FileNotFoundError: If no data root is found and mode is "use_existing"
    """
    if cli_data_path:
        data_path = Path(cli_data_path).resolve()
        if mode == "use_existing" and not _has_data_markers(data_path):
            raise FileNotFoundError(f"Not an initialized Khata data directory: {data_path}")
        return data_path

    repo_data = _get_repo_config_value(
        _load_repo_config_data(_find_repo_root(Path.cwd())), ["data_root"]
    )
    if repo_data:
        data_path = Path(repo_data).resolve()
        if mode == "use_existing" and not _has_data_markers(data_path):
            raise FileNotFoundError(
                f"Data path from .khata/config.toml is not initialized: {data_path}"
            )
        return data_path

    env_data = os.environ.get("KHATA_DATA")
    if env_data:
        data_path = Path(env_data).resolve()
        if mode == "use_existing" and not _has_data_markers(data_path):
            raise FileNotFoundError(f"KHATA_DATA path is not initialized: {data_path}")
        return data_path

    current_dir = Path.cwd()
    while True:
        if _has_data_markers(current_dir):
            return current_dir
        if _has_data_markers(current_dir / DEFAULT_DATA_DIR):
            return current_dir / DEFAULT_DATA_DIR

        parent_dir = current_dir.parent
        if parent_dir == current_dir:
            break
        current_dir = parent_dir

    if mode == "use_existing":
        raise FileNotFoundError(
            "Khata data not found. Searched for:\n"
            f"  - {DATA_MARKER} upward from {Path.cwd()}\n"
            f"  - .khata/config.toml in repo at {_find_repo_root(Path.cwd())}\n"
            "  - KHATA_DATA environment variable\n"
            "Try one of:\n"
            "  • khata init (create ./khata_data)\n"
            "  • khata --data \"/path/to/data\" <command>\n"
            "  • export KHATA_DATA=\"/path/to/data\""
        )
    return (Path.cwd() / DEFAULT_DATA_DIR).resolve()


class KhataConfig(BaseModel):
    """Configuration for the Khata data root and ledger defaults."""

    data_path: Path = Field(default_factory=lambda: Path(DEFAULT_DATA_DIR))
    account_id: str = Field(default="default")
    created_by: str = Field(default="owner")
    currency_symbol: str = Field(default="₹")
    timezone: Optional[str] = Field(
        default=None,
        description="IANA zone for day boundaries; None uses the system zone",
    )

    model_config = {"frozen": False}

    @classmethod
    def from_env(
        cls,
        cli_data_path: Optional[str] = None,
        mode: Literal["use_existing", "create_ok"] = "use_existing",
    ) -> "KhataConfig":
        """Load configuration from CLI, repo config, environment or defaults."""
        data_path = resolve_data_root(mode, cli_data_path)
        repo_config = _load_repo_config_data(_find_repo_root(Path.cwd()))

        def pick(env_name: str, key: str, default: Optional[str]) -> Optional[str]:
            return (
                os.environ.get(env_name)
                or _get_repo_config_value(repo_config, ["books", key])
                or default
            )

        return cls(
            data_path=data_path,
            account_id=pick("KHATA_ACCOUNT_ID", "account_id", "default"),
            created_by=pick("KHATA_CREATED_BY", "created_by", "owner"),
            currency_symbol=pick("KHATA_CURRENCY_SYMBOL", "currency_symbol", "₹"),
            timezone=pick("KHATA_TIMEZONE", "timezone", None),
        )

    def tzinfo(self) -> Optional[ZoneInfo]:
        """Zone used for day boundaries, or None for the system local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None

    def to_yaml_str(self) -> str:
        """Generate YAML configuration snapshot written by ``khata init``."""
        return f"""# Khata Configuration

data_path: {self.data_path}
account_id: '{self.account_id}'
created_by: '{self.created_by}'
currency_symbol: '{self.currency_symbol}'
timezone: '{self.timezone or ""}'
"""
