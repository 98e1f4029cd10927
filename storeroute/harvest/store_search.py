"""Store-locator point search over the mmeu v3 stores API."""

from __future__ import annotations

from typing import Any, Iterable

from storeroute.common.errors import InvalidGeometry
from storeroute.common.http import HttpClient, HttpRequestError, TimeoutConfig
from storeroute.common.models import Coordinate, Record

IDENTITY_FIELD = "map_store_id"


def _safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _service_ids(entry: dict[str, Any]) -> list[str]:
    value = entry.get("service_id")
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


def _stores_from_payload(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("stores"), list):
        return payload["stores"]
    raise HttpRequestError("Unexpected store search payload shape")


def record_from_store(entry: dict[str, Any]) -> Record | None:
    identity = entry.get(IDENTITY_FIELD)
    lat = _safe_float(entry.get("latitude"))
    lon = _safe_float(entry.get("longitude"))
    if identity in (None, "") or lat is None or lon is None:
        return None
    try:
        coordinate = Coordinate(lat, lon)
    except InvalidGeometry:
        return None
    return Record(identity=str(identity), coordinate=coordinate, attributes=entry)


def is_excluded(entry: dict[str, Any], exclude_name_substrings: Iterable[str]) -> bool:
    name = str(entry.get("store_name") or "")
    return any(fragment and fragment in name for fragment in exclude_name_substrings)


class StoreSearchClient:
    def __init__(
        self,
        http_client: HttpClient,
        *,
        base_url: str,
        client_id: str,
        service_filter: str | None = None,
        exclude_name_substrings: Iterable[str] = (),
        timeout: TimeoutConfig | None = None,
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.service_filter = service_filter
        self.exclude_name_substrings = tuple(exclude_name_substrings)
        self.timeout = timeout

    def search_near(self, coordinate: Coordinate) -> list[Record]:
        payload = self.http_client.get_json(
            f"{self.base_url}/stores",
            source_type="store_search",
            params={
                "client_id": self.client_id,
                "latitude": coordinate.lat,
                "longitude": coordinate.lon,
            },
            timeout=self.timeout,
        )

        records = []
        for entry in _stores_from_payload(payload):
            if not isinstance(entry, dict):
                continue
            if self.service_filter and self.service_filter not in _service_ids(entry):
                continue
            if is_excluded(entry, self.exclude_name_substrings):
                continue
            record = record_from_store(entry)
            if record is not None:
                records.append(record)
        return records

    __call__ = search_near

    def fetch_details(self, identity: str) -> dict[str, Any]:
        payload = self.http_client.get_json(
            f"{self.base_url}/store/{identity}",
            source_type="store_details",
            params={"client_id": self.client_id},
            timeout=self.timeout,
        )
        if not isinstance(payload, dict):
            raise HttpRequestError(f"Unexpected store detail payload for {identity}")
        return payload
