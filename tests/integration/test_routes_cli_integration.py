from __future__ import annotations

import json
from datetime import datetime

import pytest
import requests

from conftest import write_invoice
from invoice_tracker.cli.__main__ import EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL, main

# 住所 -> [lng, lat]
PLACES = {
    "1 Home Rd": [144.0, -37.0],
    "2 Alice St": [144.1, -37.1],
    "3 Bob St": [144.2, -37.2],
}
METERS = {
    ("1 Home Rd", "2 Alice St"): 10000.0,
    ("2 Alice St", "3 Bob St"): 5000.0,
    ("3 Bob St", "1 Home Rd"): 12000.0,
}


def _response(status: int, payload) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r._content = json.dumps(payload).encode("utf-8")
    return r


class FakeOrsSession:
    """Answers /geocode/search and /v2/directions like OpenRouteService would."""

    calls: list[tuple[str, str]] = []

    def request(self, method, url, timeout=None, params=None, json=None, headers=None):
        FakeOrsSession.calls.append((method, url.rsplit("/", 1)[-1]))
        if url.endswith("/geocode/search"):
            coords = PLACES.get(params["text"])
            features = [{"geometry": {"coordinates": coords}}] if coords else []
            return _response(200, {"features": features})
        names = {tuple(v): k for k, v in PLACES.items()}
        a, b = (names[tuple(c)] for c in json["coordinates"])
        meters = METERS.get((a, b), METERS.get((b, a)))
        if meters is None:
            return _response(404, {"error": "no route"})
        return _response(200, {"routes": [{"summary": {"distance": meters}}]})

    def close(self):
        pass


@pytest.fixture()
def fake_ors(monkeypatch):
    FakeOrsSession.calls = []
    monkeypatch.setattr(requests, "Session", FakeOrsSession)
    return FakeOrsSession


@pytest.fixture()
def setup_ledger(write_config, temp_workdir, jan_rows, capsys):
    write_invoice(temp_workdir / "jan.xlsx", jan_rows)
    assert main(["upload", "jan.xlsx"]) == EXIT_SUCCESS_ALL
    assert main(["address", "set-home", "1 Home Rd"]) == EXIT_SUCCESS_ALL
    assert main(["address", "set-client", "Alice", "2 Alice St"]) == EXIT_SUCCESS_ALL
    assert main(["address", "set-client", "Bob", "3 Bob St"]) == EXIT_SUCCESS_ALL
    return temp_workdir


def test_routes_end_to_end(setup_ledger, fake_ors, capsys):
    capsys.readouterr()
    assert main(["routes"]) == EXIT_SUCCESS_ALL
    out = capsys.readouterr().out
    # 5/1: Alice 10, Bob 5 + 12 / 6/1: Alice 10 + 10
    assert "Total kilometers: 47.0 km" in out
    assert "SUMMARY days=2 rows=3 legs=5 km=47.0 warnings=0" in out
    assert [c for c in fake_ors.calls if c[1] == "search"] == [("GET", "search")] * 3
    assert len([c for c in fake_ors.calls if c[1] == "driving-car"]) == 3

    main(["list", "--sort", "Kilometers", "--desc"])
    listing = capsys.readouterr().out
    assert listing.index("20.0") < listing.index("17.0") < listing.index("10.0")


def test_second_run_reuses_stored_kilometers(setup_ledger, fake_ors, capsys):
    main(["routes"])
    fake_ors.calls.clear()
    capsys.readouterr()

    assert main(["routes"]) == EXIT_SUCCESS_ALL
    assert "Total kilometers: 47.0 km" in capsys.readouterr().out
    assert fake_ors.calls == []


def test_cache_list_shows_computed_distances(setup_ledger, fake_ors, capsys):
    main(["routes"])
    main(["cache", "list"])
    assert "1 home rd -> 2 alice st: 10.000 km" in capsys.readouterr().out


def test_refresh_row_forces_provider_calls(setup_ledger, fake_ors, capsys):
    main(["routes"])
    fake_ors.calls.clear()
    capsys.readouterr()

    assert main(["refresh", "1"]) == EXIT_SUCCESS_ALL
    assert "row 1: 20.0 km" in capsys.readouterr().out
    assert len([c for c in fake_ors.calls if c[1] == "driving-car"]) == 2


def test_unknown_client_address_degrades(setup_ledger, fake_ors, temp_workdir, capsys):
    write_invoice(temp_workdir / "feb.xlsx", [[datetime(2024, 2, 1), "Zed", "09:00", 40]])
    main(["upload", "feb.xlsx"])
    capsys.readouterr()

    assert main(["routes"]) == EXIT_PARTIAL_FAILURE
    out = capsys.readouterr().out
    assert "warnings=1" in out
    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert logs
    record = json.loads(logs[0].read_text(encoding="utf-8").splitlines()[-1])
    assert record["error_type"] == "MISSING_CLIENT_ADDRESS"


def test_missing_api_key_degrades(setup_ledger, fake_ors, temp_workdir, capsys):
    cfg = temp_workdir / "config" / "tracker.yml"
    cfg.write_text(cfg.read_text(encoding="utf-8").replace('api_key: "test-key"', "api_key: null"), encoding="utf-8")
    capsys.readouterr()

    assert main(["routes"]) == EXIT_PARTIAL_FAILURE
    out = capsys.readouterr().out
    assert "routing api_key is not configured" in out
    assert fake_ors.calls == []
