"""Shared test fixtures."""

import pytest
import structlog


@pytest.fixture(autouse=True)
def _restore_structlog_config(monkeypatch):
    """Keep logging configured by one test (e.g. CLI runs) from leaking into others.

    Logger caching is disabled so module-level loggers do not keep a stream
    that a test runner has since closed.
    """
    saved = structlog.get_config()
    configure = structlog.configure

    def configure_uncached(*args, **kwargs):
        kwargs["cache_logger_on_first_use"] = False
        configure(*args, **kwargs)

    monkeypatch.setattr(structlog, "configure", configure_uncached)
    yield
    configure(**saved)
