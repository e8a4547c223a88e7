"""Placeholder handling for step commands.

The template language is deliberately tiny: `{{identifier}}` where the
identifier matches `[A-Za-z0-9_-]+`. Anything else (including `{{ spaced }}`
or `${VAR}`) is left for the shell.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from .models import WorkflowStep

PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Za-z0-9_-]+)\}\}")


def extract_param_keys(steps: Iterable[WorkflowStep]) -> list[str]:
    """Return the sorted, de-duplicated placeholder keys used by step commands.

    Only `command` is scanned; titles, descriptions and working directories are
    never treated as templates.
    """

    keys: set[str] = set()
    for step in steps:
        keys.update(PLACEHOLDER_PATTERN.findall(step.command))
    return sorted(keys)


def _filled(values: Mapping[str, str], key: str) -> str | None:
    value = values.get(key)
    if value is None or not value.strip():
        return None
    return value


def resolve_command(command: str, values: Mapping[str, str]) -> str:
    """Substitute placeholders, rendering unknown or blank ones as `<key>`.

    This never fails, so previews can be rendered while parameters are still
    being filled in. Execution is gated separately by `get_missing_params`.
    """

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = _filled(values, key)
        return value if value is not None else f"<{key}>"

    return PLACEHOLDER_PATTERN.sub(_replace, command)


def get_missing_params(keys: Iterable[str], values: Mapping[str, str]) -> list[str]:
    return [key for key in keys if _filled(values, key) is None]
