import pytest

from spinup.config import Settings
from spinup.main import create_app


def test_defaults_are_valid():
    settings = Settings.from_env({})
    assert settings.validate() == []
    assert (settings.port_range_start, settings.port_range_end) == (30000, 40000)
    assert settings.port_allocation_attempts == 100
    assert settings.stabilization_delay == 6.0
    assert settings.cors_origins == ("http://localhost:3000", "http://localhost:5173")


def test_from_env_reads_prefixed_variables():
    settings = Settings.from_env(
        {
            "SPINUP_PORT_RANGE_START": "32000",
            "SPINUP_PORT_RANGE_END": "32010",
            "SPINUP_PORT_ALLOCATION_ATTEMPTS": "7",
            "SPINUP_STABILIZATION_DELAY": "0.5",
            "SPINUP_SERVER_PASSWORD": "hunter2",
            "SPINUP_PUBLIC_HOST": "203.0.113.7",
            "SPINUP_CORS_ORIGINS": "https://a.example, https://b.example,",
            "PORT_RANGE_START": "1",
        }
    )
    assert (settings.port_range_start, settings.port_range_end) == (32000, 32010)
    assert settings.port_allocation_attempts == 7
    assert settings.stabilization_delay == 0.5
    assert settings.server_password == "hunter2"
    assert settings.public_host == "203.0.113.7"
    assert settings.cors_origins == ("https://a.example", "https://b.example")


def test_from_env_rejects_non_numeric_values():
    with pytest.raises(ValueError, match="SPINUP_STABILIZATION_DELAY"):
        Settings.from_env({"SPINUP_STABILIZATION_DELAY": "soon"})


def test_validate_reports_every_problem():
    errors = Settings(
        port_range_start=40000,
        port_range_end=30000,
        port_allocation_attempts=0,
        stabilization_delay=-1,
        server_password="",
    ).validate()
    assert len(errors) == 4


def test_create_app_refuses_invalid_settings():
    with pytest.raises(ValueError, match="Invalid configuration"):
        create_app(Settings(port_allocation_attempts=0))


def test_importing_app_module_does_not_read_environment(monkeypatch):
    import importlib

    import spinup.main

    monkeypatch.setenv("SPINUP_STABILIZATION_DELAY", "soon")
    module = importlib.reload(spinup.main)

    with pytest.raises(ValueError, match="SPINUP_STABILIZATION_DELAY"):
        module.create_app()
