"""Data models for meter readings, tariffs and store points."""

from dataclasses import dataclass, field
from datetime import datetime

MEASUREMENT_USAGE = "energy_usage"
MEASUREMENT_TARIFF = "energy_tariff"

# Provider aggregation settings for half-hourly consumption
READING_PERIOD = "PT30M"
READING_FUNCTION = "sum"
PERIOD_TAG = "30m"


@dataclass(frozen=True)
class TrackedResource:
    """A meter commodity: a quantity series and the cost series billed against it."""

    name: str
    quantity_resource_id: str
    cost_resource_id: str

    @property
    def resource_ids(self) -> tuple[str, str]:
        return (self.quantity_resource_id, self.cost_resource_id)


@dataclass
class Reading:
    """A single aggregated reading for one resource id."""

    timestamp: datetime
    value: float


@dataclass
class ReadingPair:
    """Quantity and cost readings sharing the same half-hour."""

    timestamp: datetime
    quantity: float
    cost: float


@dataclass
class Tariff:
    """One entry of the provider's tariff list."""

    effective_from: datetime
    rate: float
    standing_charge: float


@dataclass
class TariffSnapshot:
    """The tariff active when it was observed."""

    observed_at: datetime
    rate: float
    standing_charge: float


@dataclass
class OutputPoint:
    """A time-series point ready for the store."""

    measurement: str
    tags: dict[str, str]
    fields: dict[str, float]
    timestamp: datetime

    def key(self) -> tuple:
        """Identity used by the store for overwrites."""
        return (self.measurement, tuple(sorted(self.tags.items())), self.timestamp)


@dataclass(frozen=True)
class Window:
    """Time range to query. Both ends are inclusive at the provider."""

    start: datetime
    end: datetime


@dataclass
class CycleResult:
    """Outcome of one reconciliation cycle."""

    started_at: datetime
    points: list[OutputPoint] = field(default_factory=list)
    catchup_failures: int = 0
