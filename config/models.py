"""Pydantic configuration models for the relay reporter."""
from __future__ import annotations

import copy
import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from exceptions import ConfigurationError


# Load .env file if present
load_dotenv()


DEFAULT_CONFIG_PATH = Path("relay.config.json")


class Mode(str, Enum):
    """Backend selector for the primary and fallback roles."""

    TESTOPS = "testops"
    REPORT = "report"
    OFF = "off"


class ApiConfig(BaseModel):
    """Connection settings for the test-management service."""

    model_config = ConfigDict(frozen=True)

    token: Optional[str] = Field(
        default=None,
        description="API token sent in the Token header",
    )
    base_url: str = Field(
        default="https://api.qase.io/v1",
        description="Base URL of the test-management API",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Request timeout in seconds",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers sent with every request",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base_url doesn't have trailing slash."""
        return v.rstrip("/")


class RunConfig(BaseModel):
    """Settings for the remote test run."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = Field(
        default=None,
        ge=1,
        description="Existing run to attach results to",
    )
    title: Optional[str] = Field(default=None, description="Title of a created run")
    description: Optional[str] = Field(default=None, description="Description of a created run")
    complete: bool = Field(
        default=True,
        description="Complete the run when results are published",
    )


class TestOpsConfig(BaseModel):
    """Remote backend configuration."""

    model_config = ConfigDict(frozen=True)

    api: ApiConfig = Field(default_factory=ApiConfig)
    project: Optional[str] = Field(default=None, description="Project code")
    run: RunConfig = Field(default_factory=RunConfig)
    batch_size: int = Field(
        default=200,
        ge=1,
        le=2000,
        description="Number of results sent per bulk request",
    )
    upload_attachments: bool = Field(
        default=True,
        description="Upload result attachments before sending results",
    )


class ReportConfig(BaseModel):
    """Local report backend configuration."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(
        default=Path("./build/relay-report"),
        description="Directory for report files",
    )
    format: Literal["json", "junit"] = Field(
        default="json",
        description="Report file format",
    )

    @field_validator("path", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Path:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v


class ReporterConfig(BaseModel):
    """Root configuration model combining all config sections."""

    model_config = ConfigDict(frozen=True)

    mode: Mode = Field(default=Mode.OFF, description="Primary backend")
    fallback: Optional[Mode] = Field(default=None, description="Secondary backend")
    capture_logs: bool = Field(default=False, description="Attach captured logs to results")
    debug: bool = Field(default=False, description="Enable debug logging")
    environment: Optional[str] = Field(default=None, description="Environment slug for the run")
    root_suite: Optional[str] = Field(default=None, description="Suite prepended to every result")
    reporter_name: str = Field(default="relay-reporter", description="Reported client name")

    testops: TestOpsConfig = Field(default_factory=TestOpsConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @field_validator("mode", "fallback", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any, info: ValidationInfo) -> Any:
        """Accept mode names in any case; an empty value means unset."""
        if isinstance(v, str):
            v = v.strip().lower() or None
        if v is None and info.field_name == "mode":
            return Mode.OFF
        return v

    def masked_dump(self) -> dict[str, Any]:
        """Dump the config for logging with secrets masked."""
        data = self.model_dump(mode="json")
        if data["testops"]["api"]["token"]:
            data["testops"]["api"]["token"] = "***"
        return data


# Environment variable -> dotted config key
ENV_MAPPING = {
    "RELAY_MODE": "mode",
    "RELAY_FALLBACK": "fallback",
    "RELAY_DEBUG": "debug",
    "RELAY_CAPTURE_LOGS": "capture_logs",
    "RELAY_ENVIRONMENT": "environment",
    "RELAY_ROOT_SUITE": "root_suite",
    "RELAY_TESTOPS_API_TOKEN": "testops.api.token",
    "RELAY_TESTOPS_API_BASE_URL": "testops.api.base_url",
    "RELAY_TESTOPS_PROJECT": "testops.project",
    "RELAY_TESTOPS_RUN_ID": "testops.run.id",
    "RELAY_TESTOPS_RUN_TITLE": "testops.run.title",
    "RELAY_TESTOPS_RUN_DESCRIPTION": "testops.run.description",
    "RELAY_TESTOPS_RUN_COMPLETE": "testops.run.complete",
    "RELAY_TESTOPS_BATCH_SIZE": "testops.batch_size",
    "RELAY_REPORT_PATH": "report.path",
    "RELAY_REPORT_FORMAT": "report.format",
}


def load_config(
    options: Optional[dict[str, Any]] = None,
    config_path: Optional[Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> ReporterConfig:
    """
    Resolve the reporter configuration.

    Priority (highest to lowest):
    1. Overrides (derived from the persisted run state)
    2. Environment variables
    3. Caller options
    4. Config file
    5. Defaults

    Override keys may be dotted, e.g. ``"testops.run.id"``.
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if config_path.suffix in {".yaml", ".yml"}:
                    config_data = yaml.safe_load(f) or {}
                else:
                    config_data = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Unable to read config file {config_path}: {exc}") from exc

    if options:
        _deep_merge(config_data, copy.deepcopy(options))

    for env_var, key in ENV_MAPPING.items():
        env_value = os.getenv(env_var)
        if env_value:
            _set_dotted(config_data, key, env_value)

    if overrides:
        for key, value in overrides.items():
            if value is not None:
                _set_dotted(config_data, key, value)

    try:
        return ReporterConfig.model_validate(config_data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _deep_merge(target: dict[str, Any], source: dict[str, Any]) -> None:
    """Merge nested dictionaries, values from source win."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value


def _set_dotted(config_dict: dict[str, Any], key: str, value: Any) -> None:
    """Set a nested value addressed by a dotted key."""
    *sections, leaf = key.split(".")
    node = config_dict
    for section in sections:
        child = node.get(section)
        if not isinstance(child, dict):
            child = {}
            node[section] = child
        node = child
    node[leaf] = value
