"""Typed failures raised by the certification core.

Business outcomes (``BusinessRuleError``) are expected and map to 4xx;
``NotFound`` is a lookup miss; ``RenderingFailure`` is an infrastructure
failure.  Every error carries a stable ``code`` for API clients.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class CertificationError(Exception):
	"""Base exception for certification core errors."""

	code = "certification_error"
	http_status = 500

	def context(self) -> dict[str, Any]:
		return {}


class BusinessRuleError(CertificationError):
	"""A request that is well-formed but not allowed by certification policy."""

	code = "business_rule_violation"
	http_status = 409


class InvalidTransition(BusinessRuleError):
	"""Raised when the requested status is not reachable from the current one."""

	code = "invalid_transition"

	def __init__(self, from_status: str, to_status: str, reason: str | None = None):
		self.from_status = str(from_status)
		self.to_status = str(to_status)
		self.reason = reason or f"Cannot transition from '{self.from_status}' to '{self.to_status}'"
		super().__init__(self.reason)

	def context(self) -> dict[str, Any]:
		return {"from_status": self.from_status, "to_status": self.to_status}


class IncompleteChecklist(BusinessRuleError):
	"""Raised when completing an inspection whose checklist has unanswered items."""

	code = "incomplete_checklist"
	http_status = 422

	def __init__(self, missing_keys: Sequence[str]):
		self.missing_keys = list(missing_keys)
		super().__init__("Checklist is incomplete: " + ", ".join(self.missing_keys))

	def context(self) -> dict[str, Any]:
		return {"missing_keys": self.missing_keys}


class InvalidChecklist(BusinessRuleError):
	"""Raised for unknown checklist keys or non tri-state answers."""

	code = "invalid_checklist"
	http_status = 422

	def __init__(self, errors: Sequence[str]):
		self.errors = list(errors)
		super().__init__("; ".join(self.errors))

	def context(self) -> dict[str, Any]:
		return {"errors": self.errors}


class InspectionLocked(BusinessRuleError):
	"""Raised when editing the checklist or findings after fieldwork is closed."""

	code = "inspection_locked"

	def __init__(self, status: str):
		self.status = str(status)
		super().__init__(f"Inspection in status '{self.status}' can no longer be edited")

	def context(self) -> dict[str, Any]:
		return {"status": self.status}


class BelowThreshold(BusinessRuleError):
	"""Raised when approval is attempted with a score under the eligibility threshold."""

	code = "below_threshold"
	http_status = 422

	def __init__(self, score: int, required_threshold: int):
		self.score = score
		self.required_threshold = required_threshold
		super().__init__(
			f"Compliance score is {score}%. Minimum required is {required_threshold}%"
		)

	def context(self) -> dict[str, Any]:
		return {"score": self.score, "required_threshold": self.required_threshold}


class DuplicateCertificate(BusinessRuleError):
	"""Raised when the farm already holds an active certificate."""

	code = "duplicate_certificate"

	def __init__(self, farm_id: int, existing_number: str | None = None):
		self.farm_id = farm_id
		self.existing_number = existing_number
		message = f"Farm {farm_id} already has an active certificate"
		if existing_number:
			message += f" ({existing_number})"
		super().__init__(message)

	def context(self) -> dict[str, Any]:
		return {"farm_id": self.farm_id, "existing_number": self.existing_number}


class InspectionAlreadyCertified(BusinessRuleError):
	"""Raised when a certificate already references the inspection."""

	code = "inspection_already_certified"

	def __init__(self, inspection_id: int, existing_number: str | None = None):
		self.inspection_id = inspection_id
		self.existing_number = existing_number
		message = f"Inspection {inspection_id} has already produced a certificate"
		if existing_number:
			message += f" ({existing_number})"
		super().__init__(message)

	def context(self) -> dict[str, Any]:
		return {"inspection_id": self.inspection_id, "existing_number": self.existing_number}


class ReasonRequired(BusinessRuleError):
	"""Raised when a decision that must be explained arrives without a reason."""

	code = "reason_required"
	http_status = 422

	def __init__(self, action: str):
		self.action = action
		super().__init__(f"A reason is required to {action} an inspection")

	def context(self) -> dict[str, Any]:
		return {"action": self.action}


class NotFound(CertificationError, LookupError):
	"""Raised when a referenced inspection, farm, farmer, user or certificate is missing."""

	code = "not_found"
	http_status = 404

	def __init__(self, entity: str, entity_id: object, detail: str | None = None):
		self.entity = entity
		self.entity_id = entity_id
		super().__init__(detail or f"{entity.capitalize()} {entity_id} not found")

	def context(self) -> dict[str, Any]:
		return {"entity": self.entity, "entity_id": self.entity_id}


class RenderingFailure(CertificationError):
	"""Raised when the certificate document cannot be produced or stored."""

	code = "rendering_failure"
	http_status = 502

	def __init__(self, reason: str):
		self.reason = reason
		super().__init__(f"Certificate document could not be produced: {reason}")
