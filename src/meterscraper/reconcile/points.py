"""Build store points from paired readings and tariffs."""

from datetime import datetime
from typing import Sequence

from ..models import (
    MEASUREMENT_TARIFF,
    MEASUREMENT_USAGE,
    PERIOD_TAG,
    OutputPoint,
    ReadingPair,
    TariffSnapshot,
    TrackedResource,
)


def snapshot_tariff(source, resource: TrackedResource, now: datetime) -> TariffSnapshot:
    """Current tariff of the resource's quantity series, stamped with now."""
    tariff = source.get_tariff(resource.quantity_resource_id)
    return TariffSnapshot(
        observed_at=now,
        rate=tariff.rate,
        standing_charge=tariff.standing_charge,
    )


def build_tariff_point(resource: TrackedResource, tariff: TariffSnapshot) -> OutputPoint:
    return OutputPoint(
        measurement=MEASUREMENT_TARIFF,
        tags={"resource": resource.name},
        fields={"rate": tariff.rate, "standingCharge": tariff.standing_charge},
        timestamp=tariff.observed_at,
    )


def build_usage_points(resource: TrackedResource, pairs: Sequence[ReadingPair]) -> list[OutputPoint]:
    return [
        OutputPoint(
            measurement=MEASUREMENT_USAGE,
            tags={"resource": resource.name, "period": PERIOD_TAG},
            fields={"quantity": pair.quantity, "cost": pair.cost},
            timestamp=pair.timestamp,
        )
        for pair in pairs
    ]


def build_points(
    resource: TrackedResource,
    pairs: Sequence[ReadingPair],
    tariff: TariffSnapshot,
) -> list[OutputPoint]:
    """One tariff point followed by one usage point per pair."""
    return [build_tariff_point(resource, tariff)] + build_usage_points(resource, pairs)
