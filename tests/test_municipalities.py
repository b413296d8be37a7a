from __future__ import annotations

import httpx
import pytest

from authcore.services.errors import BadRequestError
from authcore.services.municipalities import WFS_PATH, Municipality, MunicipalityCatalogue


def _catalogue(handler) -> MunicipalityCatalogue:  # noqa: ANN001
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return MunicipalityCatalogue("http://gis.local/", client=client)


def test_catalogue_parses_and_sorts_features() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "features": [
                    {"properties": {"kodas": "13", "pavadinimas": "Vilniaus m. sav."}},
                    {"properties": {"kodas": 21, "pavadinimas": "Kauno m. sav."}},
                    {"properties": {"pavadinimas": "no code"}},
                ]
            },
        )

    municipalities = _catalogue(handler).list()

    assert municipalities == [Municipality(id=21, name="Kauno m. sav."), Municipality(id=13, name="Vilniaus m. sav.")]
    assert requests[0].url.path == WFS_PATH
    assert requests[0].url.params["REQUEST"] == "GetFeature"


def test_catalogue_ids_follow_name_order() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"features": [{"properties": {"kodas": 2, "pavadinimas": "B"}}, {"properties": {"kodas": 1, "pavadinimas": "A"}}]},
        )

    assert _catalogue(handler).ids() == [1, 2]


def test_unset_host_yields_empty_catalogue() -> None:
    assert MunicipalityCatalogue("").list() == []


def test_upstream_failure_is_a_bad_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="maintenance")

    with pytest.raises(BadRequestError):
        _catalogue(handler).list()


def test_non_json_body_is_a_bad_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html/>")

    with pytest.raises(BadRequestError):
        _catalogue(handler).list()
