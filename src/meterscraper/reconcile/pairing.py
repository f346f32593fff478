"""Fetch and align the quantity and cost series of a tracked resource."""

import logging
from typing import Sequence

from ..errors import IntegrityError
from ..models import (
    READING_FUNCTION,
    READING_PERIOD,
    Reading,
    ReadingPair,
    TrackedResource,
    Window,
)

logger = logging.getLogger(__name__)


def pair_readings(
    resource: TrackedResource,
    quantity: Sequence[Reading],
    cost: Sequence[Reading],
) -> list[ReadingPair]:
    """Zip two series into ReadingPairs, refusing anything misaligned.

    Both series must have the same length, identical timestamps at every
    index and strictly ascending order. Values are passed through unchanged.
    """
    if len(quantity) != len(cost):
        raise IntegrityError(
            f"{resource.name}: quantity series has {len(quantity)} readings "
            f"but cost series has {len(cost)}",
            resource=resource.name,
        )

    pairs = []
    previous = None
    for i, (q, c) in enumerate(zip(quantity, cost)):
        if q.timestamp != c.timestamp:
            raise IntegrityError(
                f"{resource.name}: timestamp mismatch at index {i}: "
                f"quantity {q.timestamp.isoformat()} != cost {c.timestamp.isoformat()}",
                resource=resource.name,
                index=i,
            )
        if previous is not None and q.timestamp <= previous:
            raise IntegrityError(
                f"{resource.name}: readings out of order at index {i}: "
                f"{q.timestamp.isoformat()} follows {previous.isoformat()}",
                resource=resource.name,
                index=i,
            )
        previous = q.timestamp
        pairs.append(ReadingPair(timestamp=q.timestamp, quantity=q.value, cost=c.value))

    return pairs


def fetch_paired_readings(source, resource: TrackedResource, window: Window) -> list[ReadingPair]:
    """Fetch both series over the same window and pair them."""
    quantity = source.get_readings(
        resource.quantity_resource_id,
        window.start,
        window.end,
        period=READING_PERIOD,
        function=READING_FUNCTION,
    )
    cost = source.get_readings(
        resource.cost_resource_id,
        window.start,
        window.end,
        period=READING_PERIOD,
        function=READING_FUNCTION,
    )
    logger.info(
        "got resource readings",
        extra={"resource": resource.name, "quantity_count": len(quantity), "cost_count": len(cost)},
    )
    return pair_readings(resource, quantity, cost)
