"""Glowmarkt (Hildebrand Glow) API client.

Reads half-hourly smart meter data that the provider pulls from the DCC.
See https://api.glowmarkt.com/api-docs/v0-1/resourcesys/#/

Datetimes in requests use yyyy-mm-ddThh:mm:ss in UTC, readings come back as
[epoch seconds, value] pairs.
"""

import logging
from datetime import datetime, timezone

import httpx

from ..errors import AuthenticationError, SourceAPIError
from ..models import READING_FUNCTION, READING_PERIOD, Reading, Tariff

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.glowmarkt.com/api/v0-1"
APPLICATION_ID = "b0f1b774-a586-4f72-9edd-27ead8aa7a8d"
TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
TARIFF_TIME_FORMATS = (TIME_FORMAT, "%Y-%m-%d %H:%M:%S")
DEFAULT_TIMEOUT = 30.0


def format_time(dt: datetime) -> str:
    """Format a datetime the way the API expects (UTC, no offset)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(TIME_FORMAT)


def parse_tariff_time(value: str) -> datetime:
    """Parse a tariff 'from' value, which the API sends in two layouts."""
    for fmt in TARIFF_TIME_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except (TypeError, ValueError):
            continue
    raise SourceAPIError(f"Failed to parse tariff time: {value!r}")


def from_epoch(ts: int | float) -> datetime:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def _data_object(payload: dict) -> dict:
    inner = payload.get("data")
    return inner if isinstance(inner, dict) else {}


class GlowmarktClient:
    """Client for the Glowmarkt resource API.

    The token obtained from authenticate() is held for the life of the client.
    It is never refreshed; an expired token surfaces as a SourceAPIError.
    """

    def __init__(
        self,
        token: str,
        client: httpx.Client | None = None,
        base_url: str = API_BASE_URL,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=DEFAULT_TIMEOUT)
        self.client.headers.update(
            {
                "Content-Type": "application/json",
                "applicationId": APPLICATION_ID,
                "token": token,
            }
        )

    @classmethod
    def authenticate(
        cls,
        username: str,
        password: str,
        client: httpx.Client | None = None,
        base_url: str = API_BASE_URL,
    ) -> "GlowmarktClient":
        """Exchange credentials for a token and return a ready client."""
        client = client or httpx.Client(timeout=DEFAULT_TIMEOUT)
        base_url = base_url.rstrip("/")

        try:
            response = client.post(
                f"{base_url}/auth",
                json={
                    "username": username,
                    "password": password,
                    "applicationId": APPLICATION_ID,
                },
                headers={"Content-Type": "application/json", "applicationId": APPLICATION_ID},
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Network error authenticating with Glowmarkt: {e}")

        if response.status_code != 200:
            logger.info(
                "auth rejected",
                extra={"http_status": response.status_code, "body": response.text},
            )
            raise AuthenticationError(
                f"Glowmarkt auth failed: http status code {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationError(f"Invalid auth response: {e}")

        if not isinstance(data, dict) or not data.get("valid") or not data.get("token"):
            raise AuthenticationError("auth response without valid=True")

        return cls(data["token"], client=client, base_url=base_url)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "GlowmarktClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _get(self, path: str, resource_id: str, params: dict | None = None) -> dict:
        """GET a JSON document, wrapping every failure in SourceAPIError."""
        url = f"{self.base_url}{path}"
        try:
            response = self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise SourceAPIError(f"Network error calling {path}: {e}", resource_id=resource_id)

        if response.status_code != 200:
            logger.info(
                "request rejected",
                extra={
                    "path": path,
                    "resource_id": resource_id,
                    "http_status": response.status_code,
                    "body": response.text,
                },
            )
            raise SourceAPIError(
                f"{path}: http status code {response.status_code}",
                resource_id=resource_id,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceAPIError(f"{path}: invalid JSON response: {e}", resource_id=resource_id)

        if not isinstance(payload, dict):
            raise SourceAPIError(
                f"{path}: unexpected response shape ({type(payload).__name__})",
                resource_id=resource_id,
            )
        return payload

    def request_catchup(self, resource_id: str) -> None:
        """Ask the provider to pull the latest readings from the DCC.

        The request is asynchronous and only needs sending once per half hour.
        The endpoint frequently fails, so callers should treat errors as
        advisory.
        """
        data = self._get(f"/resource/{resource_id}/catchup", resource_id)
        if not _data_object(data).get("valid"):
            raise SourceAPIError(
                "resource catchup response without valid=True", resource_id=resource_id
            )

    def _get_timestamp(self, resource_id: str, endpoint: str, key: str) -> datetime:
        data = self._get(f"/resource/{resource_id}/{endpoint}", resource_id)
        ts = _data_object(data).get(key)
        if not ts:
            raise SourceAPIError(f"no data available ({key} missing)", resource_id=resource_id)
        try:
            return from_epoch(ts)
        except (TypeError, ValueError, OverflowError):
            raise SourceAPIError(f"invalid {key}: {ts!r}", resource_id=resource_id)

    def get_first_time(self, resource_id: str) -> datetime:
        """Timestamp of the earliest reading held for a resource."""
        return self._get_timestamp(resource_id, "first-time", "firstTs")

    def get_last_time(self, resource_id: str) -> datetime:
        """Timestamp of the latest reading held for a resource."""
        return self._get_timestamp(resource_id, "last-time", "lastTs")

    def get_readings(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        period: str = READING_PERIOD,
        function: str = READING_FUNCTION,
    ) -> list[Reading]:
        """Fetch aggregated readings between start and end (both inclusive).

        Args:
            resource_id: The resource to read
            start: First interval to include
            end: Last interval to include
            period: Aggregation period, e.g. PT30M, PT1H, P1D
            function: Aggregation function, e.g. sum, avg

        Returns:
            Readings in the order the API returned them (ascending time)
        """
        params = {
            "period": period,
            "function": function,
            "from": format_time(start),
            "to": format_time(end),
        }
        data = self._get(f"/resource/{resource_id}/readings", resource_id, params=params)

        rows = data.get("data")
        if not isinstance(rows, list):
            raise SourceAPIError("readings response without data", resource_id=resource_id)

        readings = []
        for row in rows:
            try:
                epoch, value = row
                readings.append(Reading(timestamp=from_epoch(epoch), value=float(value)))
            except (TypeError, ValueError, OverflowError):
                raise SourceAPIError(f"malformed reading {row!r}", resource_id=resource_id)

        return readings

    def get_tariffs(self, resource_id: str) -> list[Tariff]:
        """All tariff entries the provider holds for a resource."""
        data = self._get(f"/resource/{resource_id}/tariff", resource_id)

        entries = data.get("data") or []
        if not isinstance(entries, list):
            raise SourceAPIError("malformed tariff response", resource_id=resource_id)

        tariffs = []
        for entry in entries:
            try:
                rates = entry["currentRates"]
                tariffs.append(
                    Tariff(
                        effective_from=parse_tariff_time(entry["from"]),
                        rate=float(rates["rate"]),
                        standing_charge=float(rates["standingCharge"]),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise SourceAPIError(f"malformed tariff entry: {e}", resource_id=resource_id)

        return tariffs

    def get_tariff(self, resource_id: str) -> Tariff:
        """The tariff entry with the latest effective date."""
        tariffs = self.get_tariffs(resource_id)
        if not tariffs:
            raise SourceAPIError("no data in tariff response", resource_id=resource_id)
        return max(tariffs, key=lambda t: t.effective_from)
