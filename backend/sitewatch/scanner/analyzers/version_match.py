# sitewatch/scanner/analyzers/version_match.py
"""
Version constraint matching.

A catalog entry lists the versions it affects as comparison constraints:

    ["*"]                   every version
    [">=2.3", "<=7.7"]      2.3 up to and including 7.7
    ["=2.3.4"]              exactly 2.3.4
    ["<2.0"]                anything older than 2.0

A version is vulnerable when EVERY constraint in the list holds. The
list is a conjunction, so a pair like [">=2.3", "<=7.7"] expresses a
closed range. A constraint that cannot be parsed never holds, which makes
the whole entry non-matching.

Ordering follows packaging.version (PEP 440), which also understands
pre-release tags such as "2.0-beta9".
"""

from __future__ import annotations

import logging
import operator
import re
from typing import Callable, Dict, Iterable, Optional

from packaging.version import InvalidVersion, Version

logger = logging.getLogger(__name__)

WILDCARD = "*"

CONSTRAINT_RE = re.compile(r"^\s*(>=|<=|>|<|=)\s*(\S+)\s*$")

OPERATORS: Dict[str, Callable[[Version, Version], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "=": operator.eq,
}


def parse_version(text: Optional[str]) -> Optional[Version]:
    """Parse a version token pulled from a banner. Returns None if unusable."""
    if not text:
        return None
    cleaned = text.strip().strip(".")
    if not cleaned:
        return None
    try:
        return Version(cleaned)
    except InvalidVersion:
        logger.debug(f"Unparseable version token: {text!r}")
        return None


def satisfies(version: Version, constraint: str) -> bool:
    """Check a single constraint such as ">=2.3" against a parsed version."""
    match = CONSTRAINT_RE.match(constraint or "")
    if not match:
        logger.debug(f"Malformed version constraint: {constraint!r}")
        return False

    op, bound_text = match.groups()
    bound = parse_version(bound_text)
    if bound is None:
        return False
    return OPERATORS[op](version, bound)


def is_vulnerable(version: Optional[str], constraints: Iterable[str]) -> bool:
    """
    True when `version` falls inside the affected range described by
    `constraints`.

    A wildcard constraint matches any version, including an unparseable
    one. Otherwise every constraint must hold, so an empty list matches
    any parseable version.
    """
    constraints = list(constraints)
    if WILDCARD in constraints:
        return True

    parsed = parse_version(version)
    if parsed is None:
        return False
    return all(satisfies(parsed, c) for c in constraints)
