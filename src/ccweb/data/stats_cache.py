"""Loader for the Claude CLI's aggregate ``stats-cache.json``."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ccweb.models.sessions import StatsCache, UsageTotals

logger = logging.getLogger(__name__)


def load_stats_cache(path: Path) -> StatsCache | None:
    """Parse the stats cache, returning None when it is absent or unreadable."""
    if not path.is_file():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.exception("Failed to read stats cache %s", path)
        return None
    try:
        return StatsCache.model_validate(raw)
    except ValidationError as e:
        logger.warning("Ignoring malformed stats cache %s: %s", path, e)
        return None


def totals_from_stats(stats: StatsCache) -> UsageTotals:
    """Sum every model bucket; both cache counters count as input."""
    totals = UsageTotals()
    for usage in stats.model_usage.values():
        totals.input += (
            usage.input_tokens
            + usage.cache_read_input_tokens
            + usage.cache_creation_input_tokens
        )
        totals.output += usage.output_tokens
        totals.cost_usd += usage.cost_usd
    return totals
