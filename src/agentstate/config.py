"""Core settings and their YAML loader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from agentstate.errors import ConfigurationError


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None
    console_export: bool = Field(
        default=False, description="Also print finished spans to stdout."
    )
    service_name: str = "agentstate"


class CoreSettings(BaseModel):
    """Tunables for the store, snapshot manager and event handler.

    Example YAML::

        max_snapshots: 20
        default_max_retries: 5
        strict_remove: true
        log_level: DEBUG
        telemetry:
          enabled: true
          otlp_endpoint: ${OTLP_ENDPOINT}
    """

    max_snapshots: int = Field(default=10, ge=1, description="Snapshots retained (FIFO).")
    default_max_retries: int = Field(default=3, ge=0)
    default_max_iterations: int = Field(default=10, ge=0)
    strict_remove: bool = Field(
        default=False,
        description="Raise StateError when removing an unknown agent instead of ignoring it.",
    )
    snapshot_on_mutation: bool = Field(
        default=True,
        description="Capture a snapshot after every committed store mutation.",
    )
    metrics_buffer_size: int = Field(default=1000, ge=1)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)


class SettingsLoader:
    """Load and validate a settings YAML file into :class:`CoreSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> CoreSettings:
        """Read YAML, interpolate env vars, and validate.

        An empty file yields the defaults.

        Raises:
            ConfigurationError: On read errors, YAML parse errors or schema
                validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Settings YAML must be a mapping")

        try:
            return CoreSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc
