"""Comparison-unit detection.

A comparison unit is one logical component (e.g. a technical indicator)
implemented once per language. Each collection may carry a regex whose first
group captures a unit name from a definition line; the first definition in a
file names the unit for all of that file's chunks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_UNIT_SUFFIX = "indicator"


@dataclass(frozen=True)
class UnitDefinition:
    name: str
    line: int  # 0-based


def compile_unit_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a unit regex: case-insensitive, ``^``/``$`` anchored per line."""
    return re.compile(pattern, re.IGNORECASE | re.MULTILINE)


def find_units(text: str, pattern: str | re.Pattern[str]) -> list[UnitDefinition]:
    """Return every unit definition in *text*, in order of appearance."""
    compiled = compile_unit_pattern(pattern) if isinstance(pattern, str) else pattern
    units: list[UnitDefinition] = []
    for match in compiled.finditer(text):
        name = match.group(1)
        if not name:
            continue
        line = text.count("\n", 0, match.start(1))
        units.append(UnitDefinition(name=name, line=line))
    return units


def resolve_unit_name(path: str, text: str, pattern: str | re.Pattern[str] | None) -> str:
    """Return the unit name for the file at *path*.

    Without a pattern the file stem is used; with a pattern the first
    definition wins and a file without one gets ``""``.
    """
    if pattern is None:
        return PurePosixPath(path).stem
    units = find_units(text, pattern)
    return units[0].name if units else ""


def unit_key(name: str) -> str:
    """Normalise *name* so that spellings across languages compare equal.

    >>> unit_key("MovingAverageIndicator") == unit_key("moving_average")
    True
    """
    key = _NON_ALNUM.sub("", name.lower())
    if key.endswith(_UNIT_SUFFIX) and key != _UNIT_SUFFIX:
        key = key[: -len(_UNIT_SUFFIX)]
    return key
