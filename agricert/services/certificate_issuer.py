"""Certificate issuance: one active certificate per farm, with its PDF.

Issuance order inside one unit of work:

1. refuse if the farm already holds an active certificate;
2. when an inspection is named, require it to be completed (or approved),
   eligible, and not already certified;
3. insert the certificate row (the partial unique index settles races
   between concurrent issuers for the same farm);
4. render and store the PDF under a timeout;
5. attach the document reference.

Any failure in 3-5 rolls the unit of work back, so no active certificate
without a document survives to block the next attempt.  A document that was
already stored for the rolled-back certificate is deleted again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import structlog
from dateutil.relativedelta import relativedelta

from agricert.config import Settings
from agricert.models.certificate import Certificate
from agricert.models.enums import CertificateStatusEnum, InspectionStatusEnum
from agricert.models.farm import Farm
from agricert.models.inspection import Inspection
from agricert.services.actor import Actor
from agricert.services.certificate_identity import (
	CERTIFYING_BODY,
	compute_expiry,
	generate_certificate_number,
	validity_period,
)
from agricert.services.certificate_renderer import (
	CertificateDocumentRenderer,
	CertificateFacts,
	FarmerFacts,
	FarmFacts,
	InspectionFacts,
	ReportLabCertificateRenderer,
)
from agricert.services.checklist import ELIGIBILITY_THRESHOLD, checklist_items, compute_score, is_eligible
from agricert.services.document_store import CertificateDocumentStore, LocalCertificateStore
from agricert.services.errors import (
	BelowThreshold,
	DuplicateCertificate,
	InspectionAlreadyCertified,
	InvalidTransition,
	NotFound,
	RenderingFailure,
)
from agricert.services.repository import CertificationRepository

logger = structlog.get_logger("agricert.issuer")

# one certificate per inspection is enforced separately by uq_certificates_inspection
CERTIFIABLE_INSPECTION_STATES = frozenset({InspectionStatusEnum.completed, InspectionStatusEnum.approved})


@dataclass(slots=True)
class IssuedCertificate:
	certificate: Certificate
	pdf: bytes


class CertificateIssuer:
	"""Creates certificate rows together with their rendered documents."""

	def __init__(
		self,
		repo: CertificationRepository,
		renderer: CertificateDocumentRenderer,
		store: CertificateDocumentStore,
		*,
		validity: relativedelta | None = None,
		number_prefix: str = "ORG",
		default_scope: str = "Organic crop production",
		timeout_seconds: float = 30.0,
	):
		self.repo = repo
		self.renderer = renderer
		self.store = store
		self.validity = validity or validity_period(1)
		self.number_prefix = number_prefix
		self.default_scope = default_scope
		self.timeout_seconds = timeout_seconds

	@classmethod
	def from_settings(cls, repo: CertificationRepository, settings: Settings) -> CertificateIssuer:
		return cls(
			repo,
			ReportLabCertificateRenderer(),
			LocalCertificateStore(Path(settings.certificate_storage_dir), settings.certificate_url_prefix),
			validity=validity_period(settings.certificate_validity_years),
			number_prefix=settings.certificate_number_prefix,
			default_scope=settings.certificate_scope_default,
			timeout_seconds=settings.issuance_timeout_seconds,
		)

	async def issue(
		self,
		farm_id: int,
		actor: Actor,
		inspection_id: int | None = None,
		scope: str | None = None,
	) -> IssuedCertificate:
		certificate: Certificate | None = None
		try:
			async with self.repo.atomic():
				existing = await self.repo.find_active_certificate(farm_id)
				if existing is not None:
					logger.info(
						"certificate_duplicate_blocked",
						farm_id=farm_id,
						existing_number=existing.certificate_number,
					)
					raise DuplicateCertificate(farm_id, existing.certificate_number)

				farm = await self._require_farm(farm_id)
				inspection = None
				if inspection_id is not None:
					inspection = await self._require_qualifying_inspection(farm_id, inspection_id)

				issue_date = datetime.now(UTC).date()
				certificate = Certificate(
					certificate_number=generate_certificate_number(self.number_prefix),
					farm_id=farm.id,
					inspection_id=inspection_id,
					issue_date=issue_date,
					expiry_date=compute_expiry(issue_date, self.validity),
					status=CertificateStatusEnum.active,
					certifying_body=CERTIFYING_BODY,
					scope=scope or self.default_scope,
					crop_types=list(farm.crop_types or []),
					pdf_url=None,
					issued_by=actor.user_id,
				)
				try:
					certificate = await self.repo.add_certificate(certificate)
				except (DuplicateCertificate, InspectionAlreadyCertified) as exc:
					logger.info(
						"certificate_duplicate_blocked",
						farm_id=farm_id,
						inspection_id=inspection_id,
						error=exc.code,
					)
					raise

				pdf = await self.render_and_store(certificate, farm, inspection)
		except Exception:
			if certificate is not None and certificate.pdf_url:
				await self._discard_document(certificate.pdf_url, certificate.certificate_number)
			raise

		logger.info(
			"certificate_issued",
			certificate_id=certificate.id,
			certificate_number=certificate.certificate_number,
			farm_id=farm_id,
			inspection_id=inspection_id,
			expiry_date=certificate.expiry_date.isoformat(),
		)
		return IssuedCertificate(certificate=certificate, pdf=pdf)

	async def render_and_store(
		self,
		certificate: Certificate,
		farm: Farm | None = None,
		inspection: Inspection | None = None,
	) -> bytes:
		"""Render the certificate, store it and point ``pdf_url`` at the stored copy."""
		if farm is None:
			farm = await self._require_farm(certificate.farm_id)
		if inspection is None and certificate.inspection_id is not None:
			inspection = await self.repo.get_inspection(certificate.inspection_id)

		farmer = await self.repo.get_farmer(farm.farmer_id)
		if farmer is None:
			raise NotFound("farmer", farm.farmer_id)

		facts = CertificateFacts(
			number=certificate.certificate_number,
			issue_date=certificate.issue_date,
			expiry_date=certificate.expiry_date,
			scope=certificate.scope,
			certifying_body=certificate.certifying_body,
		)
		farm_facts = FarmFacts(
			name=farm.farm_name,
			location=farm.location,
			area=farm.total_area,
			crop_types=list(certificate.crop_types or []),
		)
		farmer_facts = FarmerFacts(
			name=farmer.name,
			email=farmer.email,
			phone=farmer.phone,
			id_number=farmer.id_number,
		)
		inspection_facts = await self._inspection_facts(inspection)

		saving: asyncio.Task[str] | None = None
		try:
			async with asyncio.timeout(self.timeout_seconds):
				pdf = await self.renderer.render(facts, farm_facts, farmer_facts, inspection_facts)
				# shielded so a timeout cannot abandon a write that is still running
				saving = asyncio.ensure_future(self.store.save(self.document_filename(certificate), pdf))
				reference = await asyncio.shield(saving)
		except TimeoutError as exc:
			if saving is not None:
				await self._discard_pending_save(saving, certificate.certificate_number)
			logger.warning(
				"certificate_render_failed",
				certificate_number=certificate.certificate_number,
				reason="timeout",
			)
			raise RenderingFailure(f"timed out after {self.timeout_seconds:g}s") from exc
		except OSError as exc:
			logger.warning(
				"certificate_render_failed",
				certificate_number=certificate.certificate_number,
				reason=str(exc),
			)
			raise RenderingFailure(f"document could not be stored: {exc}") from exc
		except RenderingFailure as exc:
			logger.warning(
				"certificate_render_failed",
				certificate_number=certificate.certificate_number,
				reason=exc.reason,
			)
			raise

		certificate.pdf_url = reference
		await self.repo.save_certificate(certificate)
		return pdf

	@staticmethod
	def document_filename(certificate: Certificate) -> str:
		return f"certificate-{certificate.certificate_number}.pdf"

	async def _require_farm(self, farm_id: int) -> Farm:
		farm = await self.repo.get_farm(farm_id)
		if farm is None:
			raise NotFound("farm", farm_id)
		return farm

	async def _require_qualifying_inspection(self, farm_id: int, inspection_id: int) -> Inspection:
		inspection = await self.repo.get_inspection(inspection_id, for_update=True)
		if inspection is None or inspection.farm_id != farm_id:
			raise NotFound(
				"inspection",
				inspection_id,
				f"Inspection {inspection_id} not found for farm {farm_id}",
			)

		status = InspectionStatusEnum(inspection.status)
		if status not in CERTIFIABLE_INSPECTION_STATES:
			raise InvalidTransition(
				status,
				InspectionStatusEnum.approved,
				f"Only completed inspections can be certified (current status '{status}')",
			)

		score = compute_score(checklist_items(inspection.checklist))
		if not is_eligible(score):
			raise BelowThreshold(score, ELIGIBILITY_THRESHOLD)

		existing = await self.repo.find_certificate_for_inspection(inspection_id)
		if existing is not None:
			raise InspectionAlreadyCertified(inspection_id, existing.certificate_number)
		return inspection

	async def _discard_pending_save(self, saving: asyncio.Task[str], certificate_number: str) -> None:
		try:
			reference = await saving
		except OSError:
			return
		await self._discard_document(reference, certificate_number)

	async def _discard_document(self, reference: str, certificate_number: str) -> None:
		try:
			await self.store.delete(reference)
		except OSError as exc:
			logger.warning(
				"certificate_document_cleanup_failed",
				certificate_number=certificate_number,
				pdf_url=reference,
				error=str(exc),
			)
		else:
			logger.info("certificate_document_discarded", certificate_number=certificate_number, pdf_url=reference)

	async def _inspection_facts(self, inspection: Inspection | None) -> InspectionFacts | None:
		if inspection is None:
			return None
		inspector_name = None
		if inspection.inspector_id is not None:
			inspector = await self.repo.get_user(inspection.inspector_id)
			if inspector is not None:
				inspector_name = inspector.name
		return InspectionFacts(score=inspection.compliance_score, inspector_name=inspector_name)
