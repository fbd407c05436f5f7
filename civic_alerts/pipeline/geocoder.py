"""Point-mode address geocoders restricted to the municipal area."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from civic_alerts.common.config_loader import resolve_secret
from civic_alerts.common.errors import ConfigError
from civic_alerts.common.geo import geodesic_distance_m, parse_coordinate
from civic_alerts.common.http import HttpClient, TimeoutConfig
from civic_alerts.common.models import Bounds, GeoPoint
from civic_alerts.common.text import normalise_address, with_locality

logger = logging.getLogger(__name__)


class PointGeocoder(ABC):
    """Shared lookup policy: bounds filter, ambiguity check and one suffixed retry.

    Subclasses implement `_candidates`, returning every coordinate the provider
    offers for a query in provider order. Transport failures propagate as
    ExternalServiceError; not-found and ambiguous lookups return None.
    """

    source_type = "geocoder"

    def __init__(
        self,
        *,
        http_client: HttpClient,
        endpoint: str,
        bounds: Bounds,
        locality: str,
        country: str,
        timeout_seconds: float = 15.0,
        ambiguity_tolerance_m: float = 300.0,
    ) -> None:
        self.http_client = http_client
        self.endpoint = endpoint
        self.bounds = bounds
        self.locality = locality
        self.country = country
        self.timeout = TimeoutConfig(connect=min(10.0, float(timeout_seconds)), read=float(timeout_seconds))
        self.ambiguity_tolerance_m = ambiguity_tolerance_m

    @abstractmethod
    def _candidates(self, query: str) -> list[GeoPoint]:
        ...

    def _lookup(self, query: str) -> GeoPoint | None:
        in_bounds = [point for point in self._candidates(query) if self.bounds.contains(point)]
        if not in_bounds:
            return None
        first = in_bounds[0]
        for other in in_bounds[1:]:
            if geodesic_distance_m(first, other) > self.ambiguity_tolerance_m:
                logger.info("ambiguous geocoding result for %r (%d candidates)", query, len(in_bounds))
                return None
        return first

    def geocode(self, address: str) -> GeoPoint | None:
        query = normalise_address(address)
        if not query:
            return None
        point = self._lookup(query)
        if point is not None:
            return point

        suffixed = with_locality(query, self.locality, self.country)
        if suffixed == query:
            return None
        return self._lookup(suffixed)


class NominatimGeocoder(PointGeocoder):
    source_type = "nominatim"

    def _candidates(self, query: str) -> list[GeoPoint]:
        payload = self.http_client.get_json(
            self.endpoint,
            source_type=self.source_type,
            params={
                "q": query,
                "format": "jsonv2",
                "limit": 5,
                "viewbox": f"{self.bounds.west},{self.bounds.north},{self.bounds.east},{self.bounds.south}",
                "bounded": 1,
            },
            timeout=self.timeout,
        )
        points: list[GeoPoint] = []
        for item in payload if isinstance(payload, list) else []:
            if not isinstance(item, dict):
                continue
            lat = parse_coordinate(item.get("lat"))
            lng = parse_coordinate(item.get("lon"))
            if lat is not None and lng is not None:
                points.append(GeoPoint(lat=lat, lng=lng))
        return points


class GoogleGeocoder(PointGeocoder):
    source_type = "google"

    def __init__(self, *, api_key: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key

    def _candidates(self, query: str) -> list[GeoPoint]:
        payload = self.http_client.get_json(
            self.endpoint,
            source_type=self.source_type,
            params={
                "address": query,
                "key": self.api_key,
                "bounds": f"{self.bounds.south},{self.bounds.west}|{self.bounds.north},{self.bounds.east}",
            },
            timeout=self.timeout,
        )
        if not isinstance(payload, dict) or payload.get("status") != "OK":
            return []
        points: list[GeoPoint] = []
        results = payload.get("results")
        for result in results if isinstance(results, list) else []:
            geometry = result.get("geometry") if isinstance(result, dict) else None
            location = geometry.get("location") if isinstance(geometry, dict) else None
            if not isinstance(location, dict):
                continue
            lat = parse_coordinate(location.get("lat"))
            lng = parse_coordinate(location.get("lng"))
            if lat is not None and lng is not None:
                points.append(GeoPoint(lat=lat, lng=lng))
        return points


def build_point_geocoder(pipeline_config: dict, bounds: Bounds, http_client: HttpClient) -> PointGeocoder:
    geocoder_cfg = pipeline_config["geocoder"]
    municipality = pipeline_config["municipality"]
    common = {
        "http_client": http_client,
        "endpoint": geocoder_cfg["endpoint"],
        "bounds": bounds,
        "locality": municipality["locality"],
        "country": municipality["country"],
        "timeout_seconds": float(geocoder_cfg["timeout_seconds"]),
        "ambiguity_tolerance_m": float(geocoder_cfg.get("ambiguity_tolerance_m", 300)),
    }
    provider = geocoder_cfg["provider"]
    if provider == "nominatim":
        return NominatimGeocoder(**common)
    if provider == "google":
        api_key = resolve_secret(geocoder_cfg.get("api_key_env"), purpose="google geocoding")
        return GoogleGeocoder(api_key=api_key, **common)
    raise ConfigError(f"Unsupported geocoder provider: {provider}")
