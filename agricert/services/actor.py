"""Caller identity passed into core operations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Actor:
	"""An already-authenticated caller.

	``label`` is what lands in ``changed_by`` on status-history rows;
	``user_id`` becomes ``issued_by`` on certificates when known.
	"""

	user_id: int | None
	label: str

	@classmethod
	def system(cls) -> Actor:
		return cls(user_id=None, label="system")
