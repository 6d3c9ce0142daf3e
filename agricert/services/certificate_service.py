"""Certificate reads, administrative status changes and document retrieval."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from agricert.models.certificate import Certificate
from agricert.models.enums import CertificateStatusEnum
from agricert.services.actor import Actor
from agricert.services.certificate_issuer import CertificateIssuer
from agricert.services.errors import BusinessRuleError, DuplicateCertificate, NotFound
from agricert.services.repository import CertificationRepository, FarmLabel

logger = structlog.get_logger("agricert.certificates")

# renewal_pending belongs to the renewal workflow, which is not built.
ADMIN_STATUSES = frozenset(
	{
		CertificateStatusEnum.active,
		CertificateStatusEnum.expired,
		CertificateStatusEnum.revoked,
		CertificateStatusEnum.suspended,
	}
)


@dataclass(slots=True)
class CertificateListing:
	certificate: Certificate
	farm_name: str | None = None
	farmer_name: str | None = None


class CertificateService:
	def __init__(self, repo: CertificationRepository, issuer: CertificateIssuer):
		self.repo = repo
		self.issuer = issuer

	async def get(self, certificate_id: int) -> Certificate:
		certificate = await self.repo.get_certificate(certificate_id)
		if certificate is None:
			raise NotFound("certificate", certificate_id)
		return certificate

	async def list_for_farm(self, farm_id: int | None = None) -> list[CertificateListing]:
		"""Certificates newest first, each with its farm and farmer names."""
		certificates = await self.repo.list_certificates(farm_id)
		labels = await self.repo.farm_labels({cert.farm_id for cert in certificates})
		return [_listing(cert, labels.get(cert.farm_id)) for cert in certificates]

	async def update_status(
		self,
		certificate_id: int,
		status: CertificateStatusEnum,
		actor: Actor,
	) -> Certificate:
		"""Move a certificate between administrative statuses.

		Re-activating is checked against the farm's current active
		certificate and, underneath, by the storage constraint.
		"""
		status = CertificateStatusEnum(status)
		if status not in ADMIN_STATUSES:
			raise BusinessRuleError(f"Certificate status '{status}' cannot be set directly")

		async with self.repo.atomic():
			certificate = await self.get(certificate_id)
			previous = CertificateStatusEnum(certificate.status)
			if previous == status:
				return certificate

			if status == CertificateStatusEnum.active:
				existing = await self.repo.find_active_certificate(certificate.farm_id)
				if existing is not None and existing.id != certificate.id:
					raise DuplicateCertificate(certificate.farm_id, existing.certificate_number)

			certificate.status = status
			certificate = await self.repo.save_certificate(certificate)

		logger.info(
			"certificate_status_changed",
			certificate_id=certificate.id,
			certificate_number=certificate.certificate_number,
			old_status=previous.value,
			new_status=status.value,
			changed_by=actor.label,
		)
		return certificate

	async def get_document(self, certificate_id: int) -> tuple[Certificate, bytes]:
		"""Return the stored PDF, rendering it again when the stored copy is missing or unreadable."""
		certificate = await self.get(certificate_id)
		if certificate.pdf_url:
			try:
				return certificate, await self.issuer.store.load(certificate.pdf_url)
			except OSError as exc:
				logger.warning(
					"certificate_document_unreadable",
					certificate_id=certificate.id,
					pdf_url=certificate.pdf_url,
					error=str(exc),
				)

		async with self.repo.atomic():
			pdf = await self.issuer.render_and_store(certificate)
		return certificate, pdf


def _listing(certificate: Certificate, label: FarmLabel | None) -> CertificateListing:
	if label is None:
		return CertificateListing(certificate)
	return CertificateListing(certificate, label.farm_name, label.farmer_name)
