"""Tests for shared helpers."""

from __future__ import annotations

import logging
from datetime import timezone

import pytest

from tatame.shared.logging import get_logger
from tatame.shared.utils import (
    generate_id,
    is_valid_domain,
    is_valid_email,
    is_valid_url,
    parse_datetime,
    safe_json_loads,
    slugify,
    truncate,
)


def test_generate_id_prefix() -> None:
    first, second = generate_id("job"), generate_id("job")
    assert first.startswith("job_")
    assert len(first) == len("job_") + 12
    assert first != second


def test_parse_datetime_accepts_z_suffix() -> None:
    parsed = parse_datetime("2024-05-01T10:00:00Z")
    assert parsed.tzinfo == timezone.utc
    assert parsed.hour == 10
    assert parse_datetime("2024-05-01T10:00:00").tzinfo is None


def test_safe_json_loads() -> None:
    assert safe_json_loads('{"a": 1}') == {"a": 1}
    assert safe_json_loads("not json", default=[]) == []
    assert safe_json_loads(None, default={}) == {}


def test_truncate() -> None:
    assert truncate("short", 10) == "short"
    assert truncate("a" * 20, 10) == "aaaaaaa..."


def test_slugify_strips_accents() -> None:
    assert slugify("Introdução ao SEO!") == "introducao-ao-seo"


@pytest.mark.parametrize(
    "domain, valid",
    [
        ("example.com", True),
        ("blog.my-site.com.br", True),
        ("localhost", False),
        ("-bad.com", False),
        ("exa mple.com", False),
        ("", False),
    ],
)
def test_is_valid_domain(domain, valid) -> None:
    assert is_valid_domain(domain) is valid


def test_is_valid_email_and_url() -> None:
    assert is_valid_email("admin@example.com")
    assert not is_valid_email("admin@example")
    assert not is_valid_email("admin example.com")
    assert is_valid_url("https://blog.example.com")
    assert not is_valid_url("blog.example.com")


def test_get_logger_adds_one_handler() -> None:
    logger = get_logger("tatame.test.utils", level="debug")
    again = get_logger("tatame.test.utils")
    assert again is logger
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
