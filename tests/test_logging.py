"""Unit tests for the logging configuration."""

import logging

import pytest
import structlog

from ig_timeseries.logging import LOG_LEVELS, configure_logging, resolve_level


def test_configure_logging(mocker):
    """Test that the logging is configured correctly."""
    mock_basic_config = mocker.patch("logging.basicConfig")
    configure_logging(level="debug")
    mock_basic_config.assert_called_with(
        level=logging.DEBUG, format="%(message)s", stream=mocker.ANY
    )

    configure_logging(level="WARNING", json_output=True)
    mock_basic_config.assert_called_with(
        level=logging.WARNING, format="%(message)s", stream=mocker.ANY
    )

    with pytest.raises(ValueError, match="Unsupported log level"):
        configure_logging(level="invalid")

    structlog.reset_defaults()


def test_resolve_level_accepts_every_known_name():
    """Test that every documented level name resolves case-insensitively."""
    for name, value in LOG_LEVELS.items():
        assert resolve_level(name.upper()) == value


def test_json_renderer_selected(mocker):
    """Test that json_output swaps in the JSON renderer."""
    mocker.patch("logging.basicConfig")
    configure = mocker.patch("structlog.configure")

    configure_logging(level="info", json_output=True)

    processors = configure.call_args.kwargs["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
