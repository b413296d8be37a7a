"""Client for the municipality catalogue published by the GIS (WFS) server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import httpx

from authcore.core.config import get_settings
from authcore.services.errors import BadRequestError

LOGGER = logging.getLogger("authcore.services.municipalities")

WFS_PATH = "/qgisserver/uetk_zuvinimas"
WFS_PARAMS = {
    "SERVICE": "WFS",
    "REQUEST": "GetFeature",
    "TYPENAME": "municipalities",
    "OUTPUTFORMAT": "application/json",
    "PROPERTYNAME": "pavadinimas,kodas",
}


@dataclass(frozen=True)
class Municipality:
    id: int
    name: str


class MunicipalityCatalogue:
    """Fetches the full municipality list; an unset host yields an empty catalogue."""

    def __init__(
        self,
        host: Optional[str] = None,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ) -> None:
        self._host = host if host is not None else get_settings().municipalities_host
        self._client = client
        self._timeout = timeout

    def list(self) -> List[Municipality]:
        if not self._host:
            return []

        url = f"{self._host.rstrip('/')}{WFS_PATH}"
        try:
            if self._client is not None:
                response = self._client.get(url, params=WFS_PARAMS)
            else:
                response = httpx.get(url, params=WFS_PARAMS, timeout=self._timeout)
            response.raise_for_status()
            features = response.json().get("features", [])
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("municipalities_fetch_failed", extra={"host": self._host, "error": str(exc)})
            raise BadRequestError("Cannot fetch municipalities") from exc

        items = [_parse_feature(feature) for feature in features]
        municipalities = [item for item in items if item is not None]
        municipalities.sort(key=lambda item: item.name)
        LOGGER.debug("municipalities_fetched", extra={"count": len(municipalities)})
        return municipalities

    def ids(self) -> List[int]:
        return [municipality.id for municipality in self.list()]


def _parse_feature(feature: Any) -> Optional[Municipality]:
    properties = (feature or {}).get("properties") or {}
    code = properties.get("kodas")
    if code is None:
        return None
    return Municipality(id=int(code), name=str(properties.get("pavadinimas") or ""))
