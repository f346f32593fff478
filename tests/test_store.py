"""Tests for the InfluxDB store."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from influxdb_client import WritePrecision
from meterscraper.errors import StoreError
from meterscraper.models import OutputPoint
from meterscraper.store import InfluxStore, to_influx_point

TS = datetime(2026, 1, 29, 11, 30, tzinfo=timezone.utc)


@pytest.fixture
def influx():
    return MagicMock()


@pytest.fixture
def store(influx):
    return InfluxStore("http://influx:8086", "token", "home-org", "home", client=influx)


def _usage(ts=TS, quantity=1.5):
    return OutputPoint(
        measurement="energy_usage",
        tags={"resource": "gas", "period": "30m"},
        fields={"quantity": quantity, "cost": 30.0},
        timestamp=ts,
    )


def test_to_influx_point_line_protocol():
    line = to_influx_point(_usage()).to_line_protocol()

    assert line.startswith("energy_usage,period=30m,resource=gas ")
    assert "quantity=1.5" in line
    assert "cost=30" in line
    assert line.endswith(str(int(TS.timestamp())))


def test_to_influx_point_precision():
    assert to_influx_point(_usage())._write_precision == WritePrecision.S


def test_write_batch_single_call(store, influx):
    """The whole batch goes out in one write."""
    points = [_usage(), _usage(ts=datetime(2026, 1, 29, 12, 0, tzinfo=timezone.utc))]

    store.write_batch(points)

    write = influx.write_api.return_value.write
    write.assert_called_once()
    kwargs = write.call_args.kwargs
    assert kwargs["bucket"] == "home"
    assert kwargs["org"] == "home-org"
    assert len(kwargs["record"]) == 2


def test_write_empty_batch(store, influx):
    store.write_batch([])
    influx.write_api.return_value.write.assert_not_called()


def test_write_failure_raises_store_error(store, influx):
    influx.write_api.return_value.write.side_effect = RuntimeError("401 unauthorized")

    with pytest.raises(StoreError, match="401 unauthorized"):
        store.write_batch([_usage()])


def test_last_stored_time(store, influx):
    record = MagicMock()
    record.get_time.return_value = datetime(2026, 1, 29, 11, 30)
    table = MagicMock()
    table.records = [record]
    influx.query_api.return_value.query.return_value = [table]

    latest = store.last_stored_time("energy_usage", {"resource": "gas", "period": "30m"})

    assert latest == datetime(2026, 1, 29, 11, 30, tzinfo=timezone.utc)
    query = influx.query_api.return_value.query.call_args.args[0]
    assert 'r["_measurement"] == "energy_usage"' in query
    assert 'r["resource"] == "gas"' in query
    assert 'r["period"] == "30m"' in query


def test_last_stored_time_empty(store, influx):
    influx.query_api.return_value.query.return_value = []

    assert store.last_stored_time("energy_usage", {"resource": "gas"}) is None


def test_last_stored_time_failure(store, influx):
    influx.query_api.return_value.query.side_effect = RuntimeError("timeout")

    with pytest.raises(StoreError, match="timeout"):
        store.last_stored_time("energy_usage", {"resource": "gas"})


def test_context_manager_closes(store, influx):
    with store:
        pass
    influx.close.assert_called_once()
