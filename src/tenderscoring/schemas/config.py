"""Pydantic configuration schema for engine YAML input."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, ValidationError


class EngineConfig(BaseModel):
    consensus_threshold: float | None = Field(default=None, ge=0)
    minor_floor_percent: float | None = Field(default=None, ge=0, le=100)
    score_decimals: int | None = Field(default=None, ge=0, le=6)
    suggestion_cutoff: float | None = Field(default=None, ge=0, le=100)


class ComplianceConfig(BaseModel):
    emit_major_for_sub_criteria: bool | None = None


class AppConfig(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    compliance: ComplianceConfig = Field(default_factory=ComplianceConfig)

    def to_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        engine_settings = self.engine.model_dump(exclude_none=True)
        if engine_settings:
            settings["engine"] = engine_settings
        compliance_settings = self.compliance.model_dump(exclude_none=True)
        if compliance_settings:
            settings["compliance"] = compliance_settings
        return settings


def load_config(raw: Any) -> AppConfig:
    if not isinstance(raw, dict):
        raise ValidationError.from_exception_data(
            "AppConfig",
            [{"type": "dict_type", "loc": ("config",), "input": raw}],
        )
    return AppConfig.model_validate(raw)
