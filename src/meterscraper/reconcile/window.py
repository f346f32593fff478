"""Query window for a resource.

The window always ends at the provider's latest reading and reaches back a
fixed lookback, never further. Older history is not backfilled.
"""

import logging
from datetime import timedelta

from ..models import Window

logger = logging.getLogger(__name__)

LOOKBACK = timedelta(days=8)


def window_ending_at(end, lookback: timedelta = LOOKBACK) -> Window:
    if lookback <= timedelta(0):
        raise ValueError(f"lookback must be positive, got {lookback}")
    if lookback > LOOKBACK:
        raise ValueError(f"lookback must not exceed {LOOKBACK.days} days, got {lookback}")
    return Window(start=end - lookback, end=end)


def resolve_window(source, resource_id: str, lookback: timedelta = LOOKBACK) -> Window:
    """Window from (last available - lookback) to the last available reading.

    Errors from the source, including "no data available", propagate.
    """
    end = source.get_last_time(resource_id)
    window = window_ending_at(end, lookback)
    logger.info(
        "resolved window",
        extra={"resource_id": resource_id, "start": window.start, "end": window.end},
    )
    return window
