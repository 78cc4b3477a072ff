"""Parse core/socket identifier specifications.

Accepts lists such as ``["0-3,8", "10"]`` and expands them into an ordered,
deduplicated list of integer IDs.  Used once at startup to decide which
cores are sampled.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .errors import CapacityError, FormatError, RangeError

log = logging.getLogger(__name__)

# Largest CPU count the Linux kernel supports.
MAX_IDS = 1 << 13

_RANGE_RE = re.compile(r"([0-9]+)\s*-\s*([0-9]+)")
_NUMBER_RE = re.compile(r"[0-9]+")


@dataclass
class RangeParseResult:
    """Outcome of :func:`parse_id_ranges`."""

    ids: list[int] = field(default_factory=list)
    duplicates: list[int] = field(default_factory=list)


def _expand_token(token: str) -> range:
    match = _RANGE_RE.fullmatch(token)
    if match is not None:
        start, end = int(match.group(1)), int(match.group(2))
        if start >= end:
            raise FormatError(
                f"{start} is equal or greater than {end} in range {token!r}", token
            )
        return range(start, end + 1)

    if _NUMBER_RE.fullmatch(token) is None:
        raise FormatError(f"wrong format for id number {token!r}", token)
    value = int(token)
    return range(value, value + 1)


def parse_id_ranges(specs: list[str]) -> RangeParseResult:
    """Expand identifier specifications into distinct IDs.

    Args:
        specs: Strings of comma-separated tokens.  A token is either a
            non-negative integer or an ascending range ``start-end``.

    Returns:
        IDs in order of first appearance, plus every repeated value that
        was dropped.

    Raises:
        FormatError: If a token is not a number or a range is not ascending.
        CapacityError: If more than :data:`MAX_IDS` IDs are requested
            (counted before duplicates are removed).
    """
    expanded: list[int] = []
    for spec in specs:
        for raw in spec.split(","):
            token = raw.strip()
            ids = _expand_token(token)
            if len(expanded) + len(ids) > MAX_IDS:
                raise CapacityError(MAX_IDS)
            expanded.extend(ids)

    result = RangeParseResult()
    seen: set[int] = set()
    for value in expanded:
        if value in seen:
            result.duplicates.append(value)
            continue
        seen.add(value)
        result.ids.append(value)
    return result


def parse_int_ranges(specs: list[str]) -> list[int]:
    """Parse *specs* and warn about every duplicate that was dropped."""
    result = parse_id_ranges(specs)
    for duplicate in result.duplicates:
        log.warning("duplicated id number %d will be removed", duplicate)
    return result.ids


def parse_cores(cores: list[str] | None) -> list[int] | None:
    """Turn the configured core list into a filter.

    Returns ``None`` to mean "use every core the system has".  That is the
    answer when nothing was configured, when an empty list was configured,
    and when the list could not be parsed.  Errors are logged, never raised.
    """
    if cores is None:
        log.debug("all possible cores will be configured")
        return None
    if not cores:
        log.warning(
            "an empty list of cores was provided, all possible cores will be configured"
        )
        return None
    try:
        return parse_int_ranges(cores)
    except RangeError as exc:
        log.warning(
            "error while parsing list of cores: %s, "
            "all possible cores will be configured",
            exc,
        )
        return None
