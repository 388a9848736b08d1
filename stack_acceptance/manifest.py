"""Configuration manifest for the metrics dashboard class.

The manifest is a flat set of class parameters. It is validated here and
rendered to Puppet DSL so the convergence engine can read it from stdin.
"""

from __future__ import annotations

import json
import math
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from stack_acceptance.core.exceptions import ManifestError

DEFAULT_CLASS = "puppet_metrics_dashboard"

_PARAM_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")


def _format_error(err: Mapping[str, Any]) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def puppet_value(value: Any) -> str:
    """Render a Python value as a Puppet literal."""
    if value is None:
        return "undef"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and not math.isfinite(value):
        raise ManifestError(
            f"Puppet has no literal for {value!r}", details={"value": repr(value)}
        )
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"
    if isinstance(value, Mapping):
        pairs = ", ".join(f"{puppet_value(str(k))} => {puppet_value(v)}" for k, v in value.items())
        return f"{{ {pairs} }}" if pairs else "{}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(puppet_value(v) for v in value) + "]"
    raise ManifestError(
        f"Cannot render {type(value).__name__} as a Puppet value",
        details={"value": repr(value)},
    )


class MetricsDashboardManifest(BaseModel):
    """Parameters for the metrics dashboard class.

    Fields accept either their Python name or the Puppet parameter name.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    dashboard_http_port: int = Field(
        default=3000, ge=1, le=65535, alias="grafana_http_port"
    )
    database_name: list[str] = Field(
        default_factory=lambda: ["puppet_metrics"],
        min_length=1,
        alias="influxdb_database_name",
    )
    enable_agent: bool = Field(default=False, alias="enable_telegraf")
    configure_agent: bool = Field(default=False, alias="configure_telegraf")
    add_examples: bool = Field(default=False, alias="add_dashboard_examples")
    extra_parameters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("database_name", mode="before")
    @classmethod
    def wrap_single_database(cls, v):
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("database_name")
    @classmethod
    def validate_database_names(cls, v: list[str]) -> list[str]:
        names = [name.strip() for name in v]
        if any(not name for name in names):
            raise ValueError("database names must be non-empty")
        return names

    @model_validator(mode="after")
    def validate_extra_parameters(self) -> "MetricsDashboardManifest":
        modelled = {field.alias for field in type(self).model_fields.values() if field.alias}
        for name in self.extra_parameters:
            if not _PARAM_NAME.match(name):
                raise ValueError(f"invalid Puppet parameter name: {name!r}")
            if name in modelled:
                raise ValueError(f"{name!r} is a modelled parameter, set it directly")
        return self

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None = None) -> "MetricsDashboardManifest":
        """Build a manifest from a mapping, raising ManifestError when invalid."""
        try:
            return cls.model_validate(dict(options or {}))
        except ValidationError as e:
            raise ManifestError(
                "Manifest options are invalid",
                details={"errors": [_format_error(err) for err in e.errors()]},
            ) from e

    @classmethod
    def from_file(cls, path: Path | str) -> "MetricsDashboardManifest":
        """Load manifest options from a YAML or JSON file."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ManifestError(f"Manifest file not found: {path}") from e

        try:
            if path.suffix == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ManifestError(f"Cannot parse manifest file {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ManifestError(f"Manifest file {path} must contain a mapping")
        return cls.from_mapping(data)

    @property
    def primary_database(self) -> str:
        return self.database_name[0]

    def parameters(self) -> dict[str, Any]:
        """Class parameters keyed by their Puppet names, in declaration order."""
        params = self.model_dump(by_alias=True, exclude={"extra_parameters"})
        params.update(self.extra_parameters)
        return params

    def to_puppet(self, class_name: str = DEFAULT_CLASS) -> str:
        """Render the manifest as a resource-like class declaration."""
        lines = [f"class {{ {puppet_value(class_name)}:"]
        for name, value in self.parameters().items():
            lines.append(f"  {name} => {puppet_value(value)},")
        lines.append("}")
        return "\n".join(lines) + "\n"
