"""Application-wide settings and configuration."""

from pathlib import Path
from typing import Optional


class Settings:
    """Centralized engine settings."""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent.parent
    LOGS_DIR = PROJECT_ROOT / "logs"

    # Record conventions
    ID_FIELD = "Id"
    BOOKKEEPING_KEYS = ("attributes",)

    # Tab settings
    TAB_ID_PREFIX = "query-tab-"
    TAB_LABEL_MAX_LENGTH = 30
    TAB_LABEL_ELLIPSIS = "..."

    # Export settings
    EXPORT_FILENAME_FALLBACK = "query"
    BULK_EXPORT_FILENAME_FALLBACK = "export"

    @classmethod
    def ensure_directories(cls) -> None:
        """Ensure all required directories exist."""
        cls.LOGS_DIR.mkdir(parents=True, exist_ok=True)

    @classmethod
    def get_logs_dir(cls, custom_path: Optional[Path] = None) -> Path:
        """Get the log directory, with optional override."""
        return custom_path or cls.LOGS_DIR
