"""Ordered fallback chain over price sources.

Each price lookup is expressed as a list of ``Source`` objects tried in
order: live provider, last-known-good cache, static defaults. The first
source that returns a value passing its validator wins. Sources flagged
``is_fallback`` mark the result as degraded so callers can tell users the
figures are not live.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from zakat_engine.errors import UpstreamUnavailable, ZakatEngineError
from zakat_engine.services.cache_validation import ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class Source:
    """A single step in a fallback chain.

    Attributes:
        name: Identifier reported as the result's source.
        fetch: Zero-argument callable returning a value (or None for "no data").
        validate: Optional callable returning a ValidationResult for the value.
        is_fallback: Values from this source are degraded.
    """
    name: str
    fetch: Callable[[], Any]
    validate: Optional[Callable[[Any], ValidationResult]] = None
    is_fallback: bool = False


@dataclass
class FallbackResult:
    """Tagged result of a fallback chain."""
    value: Any
    source: str
    degraded: bool
    errors: list[str] = field(default_factory=list)


def fetch_with_fallback_chain(sources: list[Source]) -> FallbackResult:
    """Try each source in order and return the first acceptable value.

    Provider failures are collected, never raised, until every source is
    exhausted.

    Args:
        sources: Sources in priority order.

    Returns:
        FallbackResult with the winning value and its source name.

    Raises:
        UpstreamUnavailable: If no source produced an acceptable value.
    """
    errors = []
    for source in sources:
        try:
            value = source.fetch()
        except (ZakatEngineError, OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Price source {source.name} failed: {e}")
            errors.append(f"{source.name}: {e}")
            continue

        if value is None:
            errors.append(f"{source.name}: no data")
            continue

        if source.validate is not None:
            result = source.validate(value)
            if not result.is_valid:
                errors.append(f"{source.name}: {result.reason}")
                continue

        if source.is_fallback:
            logger.info(f"Using fallback price source {source.name}")
        return FallbackResult(
            value=value,
            source=source.name,
            degraded=source.is_fallback,
            errors=errors,
        )

    raise UpstreamUnavailable('; '.join(errors) or 'No price sources configured')
