from datetime import datetime, timedelta, timezone

import pytest
from meterscraper.errors import SourceAPIError, StoreError
from meterscraper.models import Reading, Tariff, TrackedResource

T = datetime(2026, 1, 29, 12, 0, tzinfo=timezone.utc)
T0 = datetime(2026, 1, 29, 12, 35, 10, tzinfo=timezone.utc)


class FakeSource:
    """In-memory stand-in for GlowmarktClient."""

    def __init__(self):
        self.last_times = {}
        self.first_times = {}
        self.readings = {}
        self.tariffs = {}
        self.catchup_errors = set()
        self.calls = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def request_catchup(self, resource_id):
        self.calls.append(("catchup", resource_id))
        if resource_id in self.catchup_errors:
            raise SourceAPIError("http status code 500", resource_id=resource_id, status_code=500)

    def get_first_time(self, resource_id):
        self.calls.append(("first_time", resource_id))
        if resource_id not in self.first_times:
            raise SourceAPIError("no data available", resource_id=resource_id)
        return self.first_times[resource_id]

    def get_last_time(self, resource_id):
        self.calls.append(("last_time", resource_id))
        if resource_id not in self.last_times:
            raise SourceAPIError("no data available", resource_id=resource_id)
        return self.last_times[resource_id]

    def get_readings(self, resource_id, start, end, period="PT30M", function="sum"):
        self.calls.append(("readings", resource_id, start, end, period, function))
        if resource_id not in self.readings:
            raise SourceAPIError("http status code 404", resource_id=resource_id, status_code=404)
        return [r for r in self.readings[resource_id] if start <= r.timestamp <= end]

    def get_tariff(self, resource_id):
        self.calls.append(("tariff", resource_id))
        if resource_id not in self.tariffs:
            raise SourceAPIError("no data in tariff response", resource_id=resource_id)
        return self.tariffs[resource_id]


class FakeStore:
    """Last-write-wins store keyed by (measurement, tags, timestamp)."""

    def __init__(self, fail=False):
        self.points = {}
        self.batches = []
        self.fail = fail

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def write_batch(self, points):
        if self.fail:
            raise StoreError("write refused")
        self.batches.append(list(points))
        for point in points:
            self.points[point.key()] = point.fields

    def last_stored_time(self, measurement, tags):
        times = [
            ts for (m, t, ts) in self.points
            if m == measurement and t == tuple(sorted(tags.items()))
        ]
        return max(times) if times else None


@pytest.fixture
def gas():
    return TrackedResource(name="gas", quantity_resource_id="Q1", cost_resource_id="C1")


@pytest.fixture
def source(gas):
    fake = FakeSource()
    fake.last_times["Q1"] = T
    fake.readings["Q1"] = [
        Reading(T - timedelta(minutes=60), 1.2),
        Reading(T - timedelta(minutes=30), 1.5),
    ]
    fake.readings["C1"] = [
        Reading(T - timedelta(minutes=60), 24.0),
        Reading(T - timedelta(minutes=30), 30.0),
    ]
    fake.tariffs["Q1"] = Tariff(
        effective_from=datetime(2025, 10, 1, tzinfo=timezone.utc),
        rate=5.0,
        standing_charge=20.0,
    )
    return fake


@pytest.fixture
def store():
    return FakeStore()
