"""Candidate title construction from ruleset title rules."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..models import RawHit, TitleRule, TitleRuleType
from ..utils import compile_pattern
from .fields import field_value

LOGGER = logging.getLogger(__name__)


def build_title(hit: RawHit, rules: Iterable[TitleRule]) -> str | None:
    """Concatenate static values and regex extractions into one candidate title.

    A regex rule whose field is empty contributes nothing. A regex rule whose
    field has content but does not match (or whose pattern is malformed)
    aborts the whole build and returns ``None``.
    """
    parts: list[str] = []
    for rule in rules:
        if rule.type is TitleRuleType.STATIC:
            if rule.value:
                parts.append(rule.value)
            continue

        if not rule.pattern or not rule.field:
            continue
        text = field_value(hit, rule.field)
        if not text:
            continue
        pattern = compile_pattern(rule.pattern)
        if pattern is None:
            LOGGER.debug("Malformed title rule pattern %r", rule.pattern)
            return None
        match = pattern.search(text)
        if match is None:
            return None
        if match.re.groups:
            parts.append(match.group(match.re.groups) or "")
        else:
            parts.append(match.group(0))
    return "".join(parts)
