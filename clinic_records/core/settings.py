"""
Engine configuration.

Values come from the constructor or from ``CLINIC_*`` environment
variables via :meth:`EngineSettings.from_env`.
"""

import os

from pydantic import BaseModel, Field

_TRUE_VALUES = {"1", "true", "yes", "on"}


class EngineSettings(BaseModel):
    """
    Tunables for the validation and lifecycle engine.

    Attributes:
        debounce_seconds: Quiet period before an input-driven uniqueness check runs
        snapshot_max_age_seconds: Age after which a cached snapshot is refreshed
        block_submit_on_unknown: Refuse submission when uniqueness cannot be decided
        auto_id_prefix: Prefix of system-generated business keys
        auto_id_width: Zero-padded width of the numeric part of generated keys
    """

    debounce_seconds: float = Field(0.25, ge=0.0)
    snapshot_max_age_seconds: float = Field(300.0, gt=0.0)
    block_submit_on_unknown: bool = True
    auto_id_prefix: str = Field("ID", min_length=1)
    auto_id_width: int = Field(3, ge=1)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment variables, falling back to defaults."""
        values: dict = {}

        debounce_ms = os.getenv("CLINIC_DEBOUNCE_MS")
        if debounce_ms is not None:
            values["debounce_seconds"] = float(debounce_ms) / 1000.0

        max_age = os.getenv("CLINIC_SNAPSHOT_MAX_AGE")
        if max_age is not None:
            values["snapshot_max_age_seconds"] = float(max_age)

        block = os.getenv("CLINIC_BLOCK_ON_UNKNOWN")
        if block is not None:
            values["block_submit_on_unknown"] = block.strip().lower() in _TRUE_VALUES

        prefix = os.getenv("CLINIC_AUTO_ID_PREFIX")
        if prefix is not None:
            values["auto_id_prefix"] = prefix

        width = os.getenv("CLINIC_AUTO_ID_WIDTH")
        if width is not None:
            values["auto_id_width"] = int(width)

        return cls(**values)
