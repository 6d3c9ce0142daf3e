from __future__ import annotations

import re
from datetime import UTC, date, datetime

import pytest

from agricert.services.certificate_identity import (
    CERTIFYING_BODY,
    compute_expiry,
    generate_certificate_number,
    validity_period,
)

NUMBER_PATTERN = re.compile(r"^ORG-(\d{4})-[0-9A-Z]{9}$")


def test_number_format_carries_prefix_and_year() -> None:
    number = generate_certificate_number(now=datetime(2026, 3, 14, 9, 30, tzinfo=UTC))
    match = NUMBER_PATTERN.match(number)
    assert match is not None
    assert match.group(1) == "2026"


def test_custom_prefix() -> None:
    assert generate_certificate_number("KOAN").startswith("KOAN-")


def test_numbers_generated_in_the_same_millisecond_differ() -> None:
    moment = datetime(2026, 1, 1, tzinfo=UTC)
    numbers = {generate_certificate_number(now=moment) for _ in range(50)}
    assert len(numbers) == 50


def test_expiry_is_issue_date_plus_one_year() -> None:
    assert compute_expiry(date(2026, 10, 19), validity_period(1)) == date(2027, 10, 19)


def test_expiry_from_leap_day_clamps_to_end_of_february() -> None:
    assert compute_expiry(date(2028, 2, 29), validity_period(1)) == date(2029, 2, 28)


def test_multi_year_validity() -> None:
    assert compute_expiry(date(2026, 1, 31), validity_period(3)) == date(2029, 1, 31)


def test_validity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        validity_period(0)


def test_certifying_body_constant() -> None:
    assert CERTIFYING_BODY == "Kenya Organic Agriculture Network"
