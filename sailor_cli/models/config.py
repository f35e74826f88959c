"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

import secrets
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_TRACKERS = [
    "udp://tracker.openbittorrent.com:80",
    "udp://tracker.opentrackr.org:1337/announce",
    "udp://9.rarbg.to:2920/announce",
    "udp://tracker.internetwarriors.net:1337/announce",
    "udp://tracker.leechers-paradise.org:6969",
    "udp://tracker.coppersurfer.tk:6969/announce",
    "udp://exodus.desync.com:6969",
    "udp://open.stealth.si:80/announce",
    "udp://tracker.tiny-vps.com:6969/announce",
    "udp://tracker.cyberia.is:6969/announce",
    "udp://tracker.moeking.me:6969/announce",
]

DEFAULT_SEARCH_URL = "https://apibay.org/q.php"
STATE_FILE_NAME = ".downloading.json"


def default_download_dir() -> Path:
    return Path("~/Downloads/Sailor").expanduser()


class SailorConfig(BaseModel):
    """A validated, read-only configuration model for the application."""

    # Storage
    download_dir: Path = Field(default_factory=default_download_dir)
    state_file: Path | None = None

    # Worker supervision
    downloader_command: list[str] = Field(default_factory=lambda: ["aria2c"])
    trackers: list[str] = Field(default_factory=lambda: list(DEFAULT_TRACKERS))
    poll_interval: float = 3.0
    query_timeout: float = 5.0
    max_poll_failures: int = 5

    # Search
    search_url: str = DEFAULT_SEARCH_URL
    search_timeout: float = 10.0

    # Internal fields not loaded from INI file
    rpc_secret: str = Field(
        default_factory=lambda: secrets.token_urlsafe(16), repr=False
    )
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        frozen = True
        str_strip_whitespace = True

    @field_validator("download_dir", "state_file")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else v

    @field_validator("poll_interval", "query_timeout", "search_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Intervals and timeouts must be greater than zero.")
        return v

    @field_validator("max_poll_failures")
    @classmethod
    def validate_failures(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_poll_failures must be at least 1.")
        return v

    @field_validator("downloader_command", "trackers")
    @classmethod
    def validate_not_empty(cls, v: list[str]) -> list[str]:
        cleaned = [item.strip() for item in v if item and item.strip()]
        if not cleaned:
            raise ValueError("List settings cannot be empty.")
        return cleaned

    @model_validator(mode="after")
    def default_state_file(self) -> "SailorConfig":
        """Places the state file inside the download directory unless overridden."""
        if self.state_file is None:
            # The model is frozen; bypass it once during construction.
            object.__setattr__(
                self, "state_file", self.download_dir / STATE_FILE_NAME
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"rpc_secret", "config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
