"""
Shared fixtures: every test runs against a throwaway sqlite file and the
built-in config defaults.
"""

import pytest

from harvestlog.models.schemas import AppState, TripRecord


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("HARVESTLOG_STATE_DB", str(tmp_path / "state.db"))
    monkeypatch.setenv("HARVESTLOG_CONFIG", str(tmp_path / "missing.yml"))
    return tmp_path


@pytest.fixture
def make_trip():
    def _make(date="2024-01-15", dealer="Acme Seafood", pounds=43.5, amount=152.25, area="", **kw):
        return TripRecord(harvest_date=date, dealer=dealer, pounds=pounds, amount=amount, area=area, **kw)
    return _make


@pytest.fixture
def state(make_trip):
    return AppState(
        trips=[make_trip(id="t_existing")],
        areas=["Area 62"],
        dealers=["Acme Seafood"],
        settings={"units": "lb"},
    )
