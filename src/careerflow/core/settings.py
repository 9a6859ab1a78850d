"""Settings management for careerflow with environment variable override support."""

import json
import logging
import os
import stat
import tempfile
import threading
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENV_DEFAULT_MODEL = "CAREERFLOW_DEFAULT_MODEL"
ENV_FLOWS_DIR = "CAREERFLOW_FLOWS_DIR"


class LLMSettings(BaseModel):
    """LLM model configuration.

    Resolution order for the model of an invocation:
    explicit override → flow's model → default_model.
    """

    default_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used by flows that don't name one",
    )
    temperature: Optional[float] = Field(
        default=None,
        description="Temperature used by flows that don't set one (provider default when unset)",
    )

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0.0 <= v <= 2.0:
            raise ValueError(f"Invalid temperature: {v}. Must be between 0.0 and 2.0")
        return v


class FlowSettings(BaseModel):
    """Where flow definition files are loaded from."""

    directories: list[str] = Field(
        default_factory=list,
        description="Extra directories of flow definition files, loaded after the built-in flows",
    )


class RateLimitSettings(BaseModel):
    """Signatures that mark a provider failure as rate limiting.

    Examples:
        # Also treat 503 responses as throttling
        {"statuses": [429, 503]}
    """

    statuses: list[int] = Field(default_factory=lambda: [429])
    markers: list[str] = Field(
        default_factory=lambda: [
            "429",
            "quota",
            "rate limit",
            "rate_limit",
            "too many requests",
            "resource_exhausted",
            "resource exhausted",
        ]
    )


class CareerflowSettings(BaseModel):
    """Main settings configuration."""

    version: str = Field(default="1.0.0")
    llm: LLMSettings = Field(default_factory=LLMSettings)
    flows: FlowSettings = Field(default_factory=FlowSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)


class SettingsManager:
    """Manages careerflow settings with environment variable override support."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or Path.home() / ".careerflow" / "settings.json"
        self._base: Optional[CareerflowSettings] = None
        # Lock for thread-safe load-modify-save operations
        self._lock = threading.Lock()

    def load(self) -> CareerflowSettings:
        """Load settings with environment variable overrides applied.

        The file is read once and cached; overrides are re-applied on every
        call so toggling an environment variable needs no restart. The
        returned object is a copy, so overrides never end up in the file.
        """
        base = self._base
        if base is None:
            base = self._load_from_file()
            self._base = base
        settings = base.model_copy(deep=True)
        self._apply_env_overrides(settings)
        return settings

    def load_file_settings(self) -> CareerflowSettings:
        """Settings as stored on disk, without environment overrides."""
        if self._base is None:
            self._base = self._load_from_file()
        return self._base.model_copy(deep=True)

    def reload(self) -> CareerflowSettings:
        """Force reload settings from file."""
        self._base = None
        return self.load()

    def _load_from_file(self) -> CareerflowSettings:
        """Load settings from file or return defaults."""
        if not self.settings_path.exists():
            return CareerflowSettings()
        try:
            with open(self.settings_path, encoding="utf-8") as f:
                data = json.load(f)
            return CareerflowSettings(**data)
        except Exception as e:
            # If file is corrupted, use defaults
            logger.warning(f"Failed to load settings from {self.settings_path} ({e}); using defaults")
            return CareerflowSettings()

    def _apply_env_overrides(self, settings: CareerflowSettings) -> None:
        """Apply environment variable overrides."""
        env_model = os.getenv(ENV_DEFAULT_MODEL)
        if env_model:
            settings.llm.default_model = env_model.strip()

        env_dirs = os.getenv(ENV_FLOWS_DIR)
        if env_dirs:
            extra = [d for d in env_dirs.split(os.pathsep) if d.strip()]
            settings.flows.directories = [*settings.flows.directories, *extra]

    def save(self, settings: Optional[CareerflowSettings] = None) -> None:
        """Save settings to file with atomic operations and secure permissions."""
        if settings is None:
            settings = self.load_file_settings()

        self.settings_path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write pattern: write to temp file, then replace
        temp_fd, temp_path = tempfile.mkstemp(dir=self.settings_path.parent, prefix=".settings.", suffix=".tmp")

        try:
            with open(temp_fd, "w", encoding="utf-8") as f:
                json.dump(settings.model_dump(), f, indent=2)

            os.replace(temp_path, self.settings_path)

            # Owner read/write only
            os.chmod(self.settings_path, stat.S_IRUSR | stat.S_IWUSR)

            # Clear cache to force reload on next access
            self._base = None

        except Exception:
            # Clean up temp file on failure
            Path(temp_path).unlink(missing_ok=True)
            raise

    def set_default_model(self, model: str) -> None:
        """Persist a new default model."""
        with self._lock:
            settings = self.load_file_settings()
            settings.llm.default_model = model
            self.save(settings)

    def add_flows_directory(self, directory: str) -> bool:
        """Persist an extra flow definition directory.

        Returns:
            True if the directory was added, False if it was already listed
        """
        with self._lock:
            settings = self.load_file_settings()
            if directory in settings.flows.directories:
                return False
            settings.flows.directories.append(directory)
            self.save(settings)
            return True
