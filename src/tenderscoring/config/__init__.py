"""Configuration management utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

_SUFFIXES = (".yaml", ".yml")


class ConfigManager:
    """YAML-backed loader for engine settings."""

    def __init__(self, base_path: str | Path):
        self._base_path = Path(base_path)

    def load(self, name: str) -> dict[str, Any]:
        """Load a YAML document by name without file extension."""
        path = self._resolve(name)
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{path.name} must contain a YAML mapping")
        return data

    def available(self) -> list[str]:
        """Return names of YAML documents under the base path."""
        return sorted(
            {path.stem for suffix in _SUFFIXES for path in self._base_path.glob(f"*{suffix}")}
        )

    def _resolve(self, name: str) -> Path:
        for suffix in _SUFFIXES:
            path = self._base_path / f"{name}{suffix}"
            if path.exists():
                return path
        raise FileNotFoundError(self._base_path / f"{name}.yaml")


__all__ = ["ConfigManager"]
