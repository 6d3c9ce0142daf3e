"""Certificate numbering and validity period.

Numbers look like ``ORG-2026-K3F9X2QM7``: the issue year, four base-36
characters from the millisecond clock, then five random base-36 characters.
No central counter is needed; the unique index on ``certificate_number``
backs the probabilistic guarantee.
"""

from __future__ import annotations

import secrets
from datetime import UTC, date, datetime

from dateutil.relativedelta import relativedelta

CERTIFYING_BODY = "Kenya Organic Agriculture Network"

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_CLOCK_CHARS = 4
_RANDOM_CHARS = 5


def _to_base36(value: int) -> str:
	if value == 0:
		return "0"
	digits: list[str] = []
	while value:
		value, remainder = divmod(value, 36)
		digits.append(_BASE36[remainder])
	return "".join(reversed(digits))


def generate_certificate_number(prefix: str = "ORG", now: datetime | None = None) -> str:
	moment = now or datetime.now(UTC)
	clock = _to_base36(int(moment.timestamp() * 1000))[-_CLOCK_CHARS:].rjust(_CLOCK_CHARS, "0")
	suffix = "".join(secrets.choice(_BASE36) for _ in range(_RANDOM_CHARS))
	return f"{prefix}-{moment.year}-{clock}{suffix}"


def validity_period(years: int) -> relativedelta:
	if years < 1:
		raise ValueError("certificate validity must be at least one year")
	return relativedelta(years=years)


def compute_expiry(issue_date: date, validity: relativedelta) -> date:
	"""Issue date plus the validity period; Feb 29 rolls back to Feb 28."""
	return issue_date + validity
