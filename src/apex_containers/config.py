"""YAML loading for environment configs."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError

from apex_containers.containers.models import EnvironmentConfig
from apex_containers.runtime.errors import ConfigValidationError

if TYPE_CHECKING:
    from pathlib import Path


class EnvironmentLoader:
    """Load and validate an environment YAML file into an :class:`EnvironmentConfig`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> EnvironmentConfig:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing. The config may
        sit at the top level or under a ``container:`` key.

        Raises:
            ConfigValidationError: On YAML parse errors or schema validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigValidationError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigValidationError("Environment YAML must be a mapping")

        if isinstance(data.get("container"), dict):
            data = data["container"]

        try:
            return EnvironmentConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigValidationError(str(exc)) from exc
