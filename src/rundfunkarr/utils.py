from __future__ import annotations

import functools
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

_UMLAUTS = str.maketrans({"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss", "Ä": "ae", "Ö": "oe", "Ü": "ue"})
_STRIP_PATTERN = re.compile(r"[/:;,\"'“”‘’@#?$%^*+=!|<>()]")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_DOTS_PATTERN = re.compile(r"\.{2,}")
# JavaScript spells named groups (?<name>...); lookbehinds (?<= and (?<! are left alone.
_JS_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")


@functools.lru_cache(maxsize=4096)
def normalize_title(value: str) -> str:
    """Return the dotted, ASCII-folded form used to compare episode titles."""
    lowered = value.lower().translate(_UMLAUTS)
    lowered = lowered.replace("&", "and")
    stripped = _STRIP_PATTERN.sub("", lowered)
    dotted = _WHITESPACE_PATTERN.sub(".", stripped.strip())
    dotted = _DOTS_PATTERN.sub(".", dotted)
    return dotted.strip(".")


@functools.lru_cache(maxsize=1024)
def _compile(pattern: str, flags: int) -> re.Pattern[str]:
    return re.compile(_JS_NAMED_GROUP.sub("(?P<", pattern), flags)


def compile_pattern(pattern: str | None, flags: int = 0) -> Optional[re.Pattern[str]]:
    """Compile a rule-supplied regex, returning None when it is empty or malformed."""
    if not pattern:
        return None
    try:
        return _compile(pattern, flags)
    except re.error:
        return None


def parse_leading_float(value: Any) -> Optional[float]:
    """Parse the numeric prefix of ``value`` (``"15min"`` -> 15.0)."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = re.match(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?", str(value))
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_env(val) for key, val in value.items()}
    return value


def load_yaml_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return expand_env(data)


def env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped or None


def validate_url(url: Optional[str]) -> bool:
    """Validate that URL is a valid http/https URL."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
