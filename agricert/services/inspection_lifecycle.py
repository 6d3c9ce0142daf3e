"""Inspection status lifecycle — scheduling, checklist, transitions, approval.

    scheduled ──► in_progress ──► completed ──► approved
        │              │                └─────► rejected
        └──────────────┴──► cancelled

``approved``, ``rejected`` and ``cancelled`` are terminal.  Every operation
runs in one ``repo.atomic()`` unit of work against a row-locked inspection,
so a failed precondition leaves nothing behind and status-history rows for
one inspection are appended in transition order.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

import structlog

from agricert.models.certificate import Certificate
from agricert.models.enums import InspectionStatusEnum
from agricert.models.inspection import Inspection, InspectionStatusHistory
from agricert.services.actor import Actor
from agricert.services.certificate_issuer import CertificateIssuer
from agricert.services.checklist import (
	ELIGIBILITY_THRESHOLD,
	checklist_items,
	compute_score,
	default_checklist,
	is_eligible,
	missing_answers,
	parse_answers,
)
from agricert.services.errors import (
	BelowThreshold,
	IncompleteChecklist,
	InspectionLocked,
	InvalidTransition,
	NotFound,
	ReasonRequired,
)
from agricert.services.repository import CertificationRepository

logger = structlog.get_logger("agricert.lifecycle")

S = InspectionStatusEnum

TRANSITIONS: dict[InspectionStatusEnum, frozenset[InspectionStatusEnum]] = {
	S.scheduled: frozenset({S.in_progress, S.cancelled}),
	S.in_progress: frozenset({S.completed, S.cancelled}),
	S.completed: frozenset({S.approved, S.rejected}),
	S.approved: frozenset(),
	S.rejected: frozenset(),
	S.cancelled: frozenset(),
}

TERMINAL_STATES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

EDITABLE_STATES = frozenset({S.scheduled, S.in_progress})


def allowed_transitions(status: InspectionStatusEnum | str) -> frozenset[InspectionStatusEnum]:
	return TRANSITIONS[InspectionStatusEnum(status)]


@dataclass(slots=True)
class InspectionListing:
	inspection: Inspection
	farm_name: str | None = None
	farmer_name: str | None = None


@dataclass(slots=True)
class ApprovalResult:
	inspection: Inspection
	certificate: Certificate
	pdf: bytes


class InspectionLifecycle:
	"""Owns every mutation of an inspection's status and checklist."""

	def __init__(self, repo: CertificationRepository, issuer: CertificateIssuer):
		self.repo = repo
		self.issuer = issuer

	# ── Reads ───────────────────────────────────────────────────────────────

	async def get(self, inspection_id: int) -> Inspection:
		return await self._load(inspection_id)

	async def status_history(self, inspection_id: int) -> list[InspectionStatusHistory]:
		await self._load(inspection_id)
		return await self.repo.list_status_history(inspection_id)

	async def list_inspections(
		self,
		farm_id: int | None = None,
		status: InspectionStatusEnum | str | None = None,
	) -> list[InspectionListing]:
		"""Inspections, most recently scheduled first, with farm and farmer names."""
		status = InspectionStatusEnum(status) if status is not None else None
		inspections = await self.repo.list_inspections(farm_id, status)
		labels = await self.repo.farm_labels({inspection.farm_id for inspection in inspections})
		listings = []
		for inspection in inspections:
			label = labels.get(inspection.farm_id)
			if label is None:
				listings.append(InspectionListing(inspection))
			else:
				listings.append(InspectionListing(inspection, label.farm_name, label.farmer_name))
		return listings

	# ── Scheduling and fieldwork ────────────────────────────────────────────

	async def schedule(
		self,
		farm_id: int,
		scheduled_date: date,
		actor: Actor,
		inspector_id: int | None = None,
	) -> Inspection:
		async with self.repo.atomic():
			if await self.repo.get_farm(farm_id) is None:
				raise NotFound("farm", farm_id)
			if inspector_id is not None and await self.repo.get_user(inspector_id) is None:
				raise NotFound("inspector", inspector_id)

			inspection = await self.repo.add_inspection(
				Inspection(
					farm_id=farm_id,
					inspector_id=inspector_id,
					scheduled_date=scheduled_date,
					status=S.scheduled,
					checklist=default_checklist(),
					compliance_score=None,
					is_eligible_for_certification=False,
					violations=[],
					updated_by=actor.label,
				)
			)
			await self._record(inspection.id, None, S.scheduled, actor, None)

		logger.info(
			"inspection_scheduled",
			inspection_id=inspection.id,
			farm_id=farm_id,
			inspector_id=inspector_id,
			scheduled_date=scheduled_date.isoformat(),
		)
		return inspection

	async def update_checklist(
		self,
		inspection_id: int,
		answers: Mapping[str, Any],
		actor: Actor,
	) -> Inspection:
		"""Merge answers into the checklist and rescore the answered subset."""
		parsed = parse_answers(answers)
		async with self.repo.atomic():
			inspection = await self._load_editable(inspection_id)
			merged = {**default_checklist(), **(inspection.checklist or {}), **parsed}
			inspection.checklist = merged
			inspection.compliance_score = compute_score(checklist_items(merged))
			inspection.updated_by = actor.label
			inspection = await self.repo.save_inspection(inspection)

		logger.info(
			"inspection_checklist_updated",
			inspection_id=inspection.id,
			compliance_score=inspection.compliance_score,
		)
		return inspection

	async def update_findings(
		self,
		inspection_id: int,
		actor: Actor,
		*,
		findings: str | None = None,
		recommendations: str | None = None,
		notes: str | None = None,
		violations: list[str] | None = None,
	) -> Inspection:
		async with self.repo.atomic():
			inspection = await self._load_editable(inspection_id)
			if findings is not None:
				inspection.findings = findings
			if recommendations is not None:
				inspection.recommendations = recommendations
			if notes is not None:
				inspection.notes = notes
			if violations is not None:
				inspection.violations = list(violations)
			inspection.updated_by = actor.label
			return await self.repo.save_inspection(inspection)

	# ── Status transitions ──────────────────────────────────────────────────

	async def transition_status(
		self,
		inspection_id: int,
		new_status: InspectionStatusEnum | str,
		actor: Actor,
		reason: str | None = None,
	) -> Inspection:
		new_status = InspectionStatusEnum(new_status)
		if new_status == S.approved:
			return (await self.approve(inspection_id, actor, reason)).inspection
		if new_status == S.rejected:
			return await self.reject(inspection_id, actor, reason)

		async with self.repo.atomic():
			inspection = await self._load(inspection_id, for_update=True)
			current = InspectionStatusEnum(inspection.status)
			self._check_transition(current, new_status)

			if new_status == S.in_progress and inspection.inspection_date is None:
				inspection.inspection_date = datetime.now(UTC).date()

			if new_status == S.completed:
				items = checklist_items(inspection.checklist)
				missing = missing_answers(items)
				if missing:
					raise IncompleteChecklist(missing)
				score = compute_score(items)
				inspection.compliance_score = score
				inspection.is_eligible_for_certification = is_eligible(score)

			inspection = await self._apply(inspection, new_status, actor, reason)

		logger.info(
			"inspection_transitioned",
			inspection_id=inspection.id,
			old_status=current.value,
			new_status=new_status.value,
			changed_by=actor.label,
			compliance_score=inspection.compliance_score,
		)
		return inspection

	async def approve(
		self,
		inspection_id: int,
		actor: Actor,
		reason: str | None = None,
	) -> ApprovalResult:
		"""Approve a completed, eligible inspection and issue its certificate.

		Certificate issuance and the status change commit together or not at
		all; a ``DuplicateCertificate`` or ``RenderingFailure`` from the issuer
		leaves the inspection ``completed``.
		"""
		async with self.repo.atomic():
			inspection = await self._load(inspection_id, for_update=True)
			current = InspectionStatusEnum(inspection.status)
			if current != S.completed:
				raise InvalidTransition(
					current,
					S.approved,
					f"Only completed inspections can be approved (current status '{current}')",
				)

			score = compute_score(checklist_items(inspection.checklist))
			if not is_eligible(score):
				raise BelowThreshold(score, ELIGIBILITY_THRESHOLD)

			issued = await self.issuer.issue(inspection.farm_id, actor, inspection_id=inspection.id)
			inspection = await self._apply(inspection, S.approved, actor, reason)

		logger.info(
			"inspection_approved",
			inspection_id=inspection.id,
			farm_id=inspection.farm_id,
			compliance_score=score,
			certificate_number=issued.certificate.certificate_number,
			changed_by=actor.label,
		)
		return ApprovalResult(inspection=inspection, certificate=issued.certificate, pdf=issued.pdf)

	async def reject(self, inspection_id: int, actor: Actor, reason: str | None) -> Inspection:
		"""Reject a completed inspection; the reason is required and appended to its notes."""
		reason = (reason or "").strip()
		if not reason:
			raise ReasonRequired("reject")

		async with self.repo.atomic():
			inspection = await self._load(inspection_id, for_update=True)
			current = InspectionStatusEnum(inspection.status)
			if current != S.completed:
				raise InvalidTransition(
					current,
					S.rejected,
					f"Only completed inspections can be rejected (current status '{current}')",
				)
			inspection.notes = f"{inspection.notes}\n{reason}" if inspection.notes else reason
			inspection = await self._apply(inspection, S.rejected, actor, reason)

		logger.info(
			"inspection_rejected",
			inspection_id=inspection.id,
			farm_id=inspection.farm_id,
			reason=reason,
			changed_by=actor.label,
		)
		return inspection

	# ── Helpers ─────────────────────────────────────────────────────────────

	@staticmethod
	def _check_transition(current: InspectionStatusEnum, new_status: InspectionStatusEnum) -> None:
		if new_status not in TRANSITIONS[current]:
			if current in TERMINAL_STATES:
				reason = f"Inspection is already '{current}' and cannot change status"
			else:
				reason = None
			raise InvalidTransition(current, new_status, reason)

	async def _load(self, inspection_id: int, for_update: bool = False) -> Inspection:
		inspection = await self.repo.get_inspection(inspection_id, for_update=for_update)
		if inspection is None:
			raise NotFound("inspection", inspection_id)
		return inspection

	async def _load_editable(self, inspection_id: int) -> Inspection:
		inspection = await self._load(inspection_id, for_update=True)
		status = InspectionStatusEnum(inspection.status)
		if status not in EDITABLE_STATES:
			raise InspectionLocked(status)
		return inspection

	async def _apply(
		self,
		inspection: Inspection,
		new_status: InspectionStatusEnum,
		actor: Actor,
		reason: str | None,
	) -> Inspection:
		old_status = InspectionStatusEnum(inspection.status)
		inspection.status = new_status
		inspection.updated_by = actor.label
		inspection = await self.repo.save_inspection(inspection)
		await self._record(inspection.id, old_status, new_status, actor, reason)
		return inspection

	async def _record(
		self,
		inspection_id: int,
		old_status: InspectionStatusEnum | None,
		new_status: InspectionStatusEnum,
		actor: Actor,
		reason: str | None,
	) -> InspectionStatusHistory:
		return await self.repo.append_status_history(
			InspectionStatusHistory(
				inspection_id=inspection_id,
				old_status=old_status,
				new_status=new_status,
				changed_by=actor.label,
				reason=reason,
				changed_at=datetime.now(UTC),
			)
		)
