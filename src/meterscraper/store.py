"""InfluxDB time-series store.

Writes are idempotent: InfluxDB overwrites a point with the same
measurement, tag set and timestamp, so the whole lookback window can be
rewritten every cycle.
"""

import logging
from datetime import datetime, timezone
from typing import Sequence

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from .errors import StoreError
from .models import OutputPoint

logger = logging.getLogger(__name__)


def to_influx_point(point: OutputPoint) -> Point:
    """Convert an OutputPoint to an influxdb_client Point."""
    record = Point(point.measurement)
    for key, value in sorted(point.tags.items()):
        record = record.tag(key, value)
    for key, value in point.fields.items():
        record = record.field(key, float(value))
    return record.time(point.timestamp, WritePrecision.S)


def _flux_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class InfluxStore:
    """Batched writes and last-timestamp queries against one bucket."""

    def __init__(
        self,
        url: str,
        token: str,
        org: str,
        bucket: str,
        client: InfluxDBClient | None = None,
    ):
        self.org = org
        self.bucket = bucket
        self.client = client or InfluxDBClient(url=url, token=token, org=org)
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)
        self.query_api = self.client.query_api()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "InfluxStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def write_batch(self, points: Sequence[OutputPoint]) -> None:
        """Write all points in a single request.

        Raises StoreError if the write fails; nothing is retried.
        """
        if not points:
            return

        records = [to_influx_point(p) for p in points]
        try:
            self.write_api.write(bucket=self.bucket, org=self.org, record=records)
        except Exception as e:
            raise StoreError(f"Failed to write {len(records)} points to {self.bucket}: {e}")

        logger.info("wrote batch", extra={"count": len(records), "bucket": self.bucket})

    def last_stored_time(self, measurement: str, tags: dict[str, str]) -> datetime | None:
        """Timestamp of the newest stored point for a measurement and tag set."""
        filters = [f'r["_measurement"] == {_flux_string(measurement)}']
        filters += [f"r[{_flux_string(k)}] == {_flux_string(v)}" for k, v in sorted(tags.items())]

        query = f"""
from(bucket: {_flux_string(self.bucket)})
|> range(start: 0, stop: now())
|> filter(fn: (r) => {" and ".join(filters)})
|> keep(columns: ["_time"])
|> last(column: "_time")"""

        try:
            tables = self.query_api.query(query, org=self.org)
        except Exception as e:
            raise StoreError(f"Failed to query last stored time for {measurement}: {e}")

        latest = None
        for table in tables:
            for record in table.records:
                ts = record.get_time()
                if ts is None:
                    continue
                if ts.tzinfo is None:
                    ts = ts.replace(tzinfo=timezone.utc)
                if latest is None or ts > latest:
                    latest = ts
        return latest
