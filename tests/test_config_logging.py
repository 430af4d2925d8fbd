import logging

from servicedesk.core.config import Settings
from servicedesk.core.logging import configure_logging, init_tracer, parse_otlp_headers, shutdown_tracer


def test_parse_otlp_headers():
    assert parse_otlp_headers(None) == {}
    assert parse_otlp_headers("api-key=abc, x-team = desk ,broken") == {"api-key": "abc", "x-team": "desk"}


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("TRACK_FOLIO_MAX_REQUESTS", "9")
    monkeypatch.setenv("ENFORCE_STATUS_TRANSITIONS", "false")

    settings = Settings(_env_file=None)

    assert settings.track_folio_max_requests == 9
    assert settings.enforce_status_transitions is False
    assert settings.coverage_check_max_requests == 20


def test_configure_logging_returns_package_logger():
    logger = configure_logging(Settings(_env_file=None, log_level="debug"))

    assert logger.name == "servicedesk"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_tracer_disabled_by_default():
    provider = init_tracer(Settings(_env_file=None, otel_enabled=False))

    assert provider is None
    shutdown_tracer(provider)
