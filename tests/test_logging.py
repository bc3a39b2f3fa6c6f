"""Tests for the package logger configured on import."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import pytest

import stocksense


def test_package_logger_is_configured_once():
    assert stocksense.log.name == "stocksense"
    assert stocksense._configure_logging() is stocksense.log
    stream_handlers = [
        handler
        for handler in stocksense.log.handlers
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, RotatingFileHandler)
    ]
    assert len(stream_handlers) == 1


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, logging.INFO),
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
        ("chatty", logging.INFO),
    ],
)
def test_resolve_level(raw, expected):
    assert stocksense._resolve_level(raw) == expected
