from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from jsonschema import Draft7Validator

from .utils import validate_url


@dataclass(slots=True)
class ValidationIssue:
    """Represents a single validation problem."""

    severity: str
    path: str
    message: str
    code: str
    fix_suggestion: Optional[str] = None


@dataclass(slots=True)
class ValidationReport:
    """Aggregates validation warnings and errors."""

    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, path: str, message: str, code: str, fix_suggestion: Optional[str] = None) -> None:
        self.errors.append(ValidationIssue("error", path, message, code, fix_suggestion))

    def warning(self, path: str, message: str, code: str, fix_suggestion: Optional[str] = None) -> None:
        self.warnings.append(ValidationIssue("warning", path, message, code, fix_suggestion))


_NUMBER = {"type": ["number", "integer"], "minimum": 0}
_OPTIONAL_STRING = {"type": ["string", "null"]}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "data_dir": {"type": "string"},
        "log_level": {
            "type": "string",
            "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "debug", "info", "warning", "error", "critical"],
        },
        "log_file": _OPTIONAL_STRING,
        "catalog": {
            "type": "object",
            "properties": {
                "api_url": {"type": "string"},
                "timeout": _NUMBER,
                "cache_ttl": _NUMBER,
                "show_max_results": {"type": "integer", "minimum": 1},
                "text_max_results": {"type": "integer", "minimum": 1},
                "recent_max_results": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": False,
        },
        "rulesets": {
            "type": "object",
            "properties": {
                "url": _OPTIONAL_STRING,
                "local_file": _OPTIONAL_STRING,
                "refresh_interval": _NUMBER,
                "auto_generate": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
        "metadata": {
            "type": "object",
            "properties": {
                "shows_url": _OPTIONAL_STRING,
                "shows_file": _OPTIONAL_STRING,
                "timeout": _NUMBER,
                "cache_ttl": _NUMBER,
                "tmdb": {
                    "type": "object",
                    "properties": {"api_key": _OPTIONAL_STRING},
                    "additionalProperties": False,
                },
                "tvdb": {
                    "type": "object",
                    "properties": {
                        "api_key": _OPTIONAL_STRING,
                        "pin": _OPTIONAL_STRING,
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        "matching": {
            "type": "object",
            "properties": {
                "title_threshold": {"type": ["number", "integer"], "minimum": 0, "maximum": 1},
                "movie_duration_tolerance": {"type": "integer", "minimum": 0},
            },
            "additionalProperties": False,
        },
        "search": {
            "type": "object",
            "properties": {"timeout": _NUMBER},
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


def _format_jsonschema_path(path: Sequence[Any]) -> str:
    if not path:
        return "<root>"
    tokens: List[str] = []
    for part in path:
        if isinstance(part, int):
            if tokens:
                tokens[-1] = f"{tokens[-1]}[{part}]"
            else:
                tokens.append(f"[{part}]")
        else:
            tokens.append(str(part))
    return ".".join(tokens) if tokens else "<root>"


def _suggest_schema_fix(path: str, message: str) -> Optional[str]:
    if "Additional properties are not allowed" in message:
        return f"Remove the unknown key under '{path}' or check its spelling"
    if "is not of type" in message:
        return f"Check the value type of '{path}'"
    if "is not one of" in message and path == "log_level":
        return "Use one of DEBUG, INFO, WARNING, ERROR or CRITICAL"
    return None


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def _check_url(report: ValidationReport, path: str, value: Any) -> None:
    if value is None or not isinstance(value, str):
        return
    if not value.strip():
        report.error(path, "URL must not be blank", "blank-url", "Remove the key to use the default")
    elif not validate_url(value):
        report.error(path, f"'{value}' is not an http(s) URL", "invalid-url")


def _validate_semantics(data: Dict[str, Any], report: ValidationReport) -> None:
    catalog = _section(data, "catalog")
    _check_url(report, "catalog.api_url", catalog.get("api_url"))

    rulesets = _section(data, "rulesets")
    _check_url(report, "rulesets.url", rulesets.get("url"))
    local_file = rulesets.get("local_file")
    if isinstance(local_file, str) and local_file.strip() and not Path(local_file).expanduser().exists():
        report.warning("rulesets.local_file", f"File '{local_file}' does not exist", "missing-file")
    if "url" in rulesets and rulesets.get("url") is None and not local_file:
        report.warning(
            "rulesets",
            "No curated ruleset source configured; only generated rulesets will be used",
            "no-curated-source",
            "Set 'rulesets.url' or 'rulesets.local_file'",
        )

    metadata = _section(data, "metadata")
    _check_url(report, "metadata.shows_url", metadata.get("shows_url"))
    shows_file = metadata.get("shows_file")
    if isinstance(shows_file, str) and shows_file.strip() and not Path(shows_file).expanduser().exists():
        report.warning("metadata.shows_file", f"File '{shows_file}' does not exist", "missing-file")

    tvdb = _section(metadata, "tvdb")
    if tvdb.get("pin") and not tvdb.get("api_key"):
        report.warning(
            "metadata.tvdb.pin",
            "A TVDB pin without an api_key has no effect",
            "tvdb-pin-without-key",
            "Add 'metadata.tvdb.api_key' or set RUNDFUNKARR_TVDB_KEY",
        )


def validate_config_data(data: Any) -> ValidationReport:
    """Validate configuration data against the schema and semantic rules.

    Args:
        data: The parsed YAML document

    Returns:
        ValidationReport containing any errors or warnings found
    """
    report = ValidationReport()
    if data is None:
        data = {}
    validator = Draft7Validator(CONFIG_SCHEMA)

    for error in sorted(validator.iter_errors(data), key=lambda exc: _format_jsonschema_path(exc.absolute_path)):
        error_path = _format_jsonschema_path(error.absolute_path)
        report.error(error_path, error.message, "schema", _suggest_schema_fix(error_path, error.message))

    if isinstance(data, dict):
        _validate_semantics(data, report)
    return report


def validate_config_file(path: Path) -> ValidationReport:
    """Read ``path`` as YAML and validate it; read and parse failures become errors."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        report = ValidationReport()
        report.error("<root>", f"Cannot read {path}: {exc}", "load-config", "Check the path and permissions")
        return report
    except yaml.YAMLError as exc:
        report = ValidationReport()
        report.error("<root>", f"Invalid YAML: {exc}", "yaml-syntax")
        return report
    return validate_config_data(data)
