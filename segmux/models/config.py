"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

import os
import re

from pydantic import BaseModel, Field, field_validator, model_validator

# Dash separated preset names such as "h265-nvidia-lossless"
PREDEFINED_PRESET = re.compile(r"^\w+(-\w+)*?$")

MISSING_LOCALE_POLICIES = ("fail", "warn", "prompt")


def default_workers() -> int:
    """One worker per logical CPU, like the segment scheduler expects."""
    return min(os.cpu_count() or 4, 64)


class DownloadConfig(BaseModel):
    """A validated configuration model for the application."""

    # Download Settings
    workers: int = Field(default_factory=default_workers)
    max_attempts: int = 5
    retry_delay: float = 0.0
    speed_limit: int = 0  # bytes per second, 0 disables the limiter
    temp_dir: str = ""
    skip_existing: bool = False
    verify_tracks: bool = True
    missing_locale: str = "warn"

    # Muxing Settings
    ffmpeg_preset: str = ""
    ffmpeg_threads: int | None = None
    output_format: str = ""
    default_subtitle: str = ""
    force_hardsub: bool = False

    # Synchronization Settings
    sync_audio: bool = True
    sync_tolerance: int = 6
    sync_precision: int = 8

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers."""
        if v < 1 or v > 64:
            raise ValueError("Workers must be between 1 and 64.")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Max attempts must be at least 1.")
        return v

    @field_validator("retry_delay", "speed_limit")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value cannot be negative.")
        return v

    @field_validator("missing_locale")
    @classmethod
    def validate_missing_locale(cls, v: str) -> str:
        v = v.lower()
        if v not in MISSING_LOCALE_POLICIES:
            raise ValueError(
                f"Missing locale policy must be one of: "
                f"{', '.join(MISSING_LOCALE_POLICIES)}."
            )
        return v

    @field_validator("ffmpeg_threads")
    @classmethod
    def validate_threads(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("ffmpeg threads must be a positive number.")
        return v

    @field_validator("sync_tolerance")
    @classmethod
    def validate_tolerance(cls, v: int) -> int:
        """Tolerance is a number of differing bits in a 32 bit token."""
        if not 0 <= v <= 32:
            raise ValueError("Sync tolerance must be between 0 and 32.")
        return v

    @field_validator("sync_precision")
    @classmethod
    def validate_precision(cls, v: int) -> int:
        if not 1 <= v <= 128:
            raise ValueError("Sync precision must be between 1 and 128.")
        return v

    @model_validator(mode="after")
    def validate_option_conflicts(self) -> "DownloadConfig":
        """Checks for conflicting mux options."""
        if (
            self.ffmpeg_threads is not None
            and self.ffmpeg_preset
            and not PREDEFINED_PRESET.match(self.ffmpeg_preset)
        ):
            raise ValueError(
                "--ffmpeg-threads only applies to predefined presets, not custom "
                "ffmpeg arguments."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
