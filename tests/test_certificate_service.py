from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest
from dateutil.relativedelta import relativedelta

from agricert.models import Certificate, CertificateStatusEnum
from agricert.services.actor import Actor
from agricert.services.certificate_identity import CERTIFYING_BODY
from agricert.services.certificate_issuer import CertificateIssuer
from agricert.services.certificate_service import CertificateService
from agricert.services.errors import BusinessRuleError, DuplicateCertificate, NotFound


@pytest.fixture
def service(repo, issuer: CertificateIssuer) -> CertificateService:
    return CertificateService(repo, issuer)


def _seed_certificate(
    world: SimpleNamespace,
    farm_id: int,
    number: str,
    status: CertificateStatusEnum = CertificateStatusEnum.active,
    issued: date = date(2025, 6, 1),
) -> Certificate:
    return world.store.insert(
        Certificate(
            certificate_number=number,
            farm_id=farm_id,
            inspection_id=None,
            issue_date=issued,
            expiry_date=issued + relativedelta(years=1),
            status=status,
            certifying_body=CERTIFYING_BODY,
            scope="Organic crop production",
            crop_types=["kale"],
            pdf_url=None,
            issued_by=None,
        )
    )


@pytest.mark.asyncio
async def test_get_unknown_certificate(service: CertificateService) -> None:
    with pytest.raises(NotFound):
        await service.get(77)


@pytest.mark.asyncio
async def test_list_filters_by_farm_newest_first(service: CertificateService, world: SimpleNamespace) -> None:
    old = _seed_certificate(world, world.farm.id, "ORG-2024-A", CertificateStatusEnum.expired, date(2024, 1, 5))
    new = _seed_certificate(world, world.farm.id, "ORG-2025-B", issued=date(2025, 2, 1))
    _seed_certificate(world, world.other_farm.id, "ORG-2025-C")

    farm_certificates = await service.list_for_farm(world.farm.id)
    everything = await service.list_for_farm()

    assert [listing.certificate.id for listing in farm_certificates] == [new.id, old.id]
    assert len(everything) == 3
    assert {listing.farm_name for listing in everything} == {"Green Valley Farm", "Hillside Plot"}
    assert all(listing.farmer_name == "Wanjiku Kamau" for listing in everything)


@pytest.mark.asyncio
async def test_revoke_then_reactivate(service: CertificateService, world: SimpleNamespace, actor: Actor) -> None:
    certificate = _seed_certificate(world, world.farm.id, "ORG-2025-R")

    revoked = await service.update_status(certificate.id, CertificateStatusEnum.revoked, actor)
    assert revoked.status == CertificateStatusEnum.revoked
    assert world.store.active_certificates(world.farm.id) == []

    reactivated = await service.update_status(certificate.id, CertificateStatusEnum.active, actor)
    assert reactivated.status == CertificateStatusEnum.active


@pytest.mark.asyncio
async def test_reactivation_blocked_while_farm_has_active_certificate(
    service: CertificateService, world: SimpleNamespace, actor: Actor
) -> None:
    suspended = _seed_certificate(world, world.farm.id, "ORG-2025-S", CertificateStatusEnum.suspended)
    _seed_certificate(world, world.farm.id, "ORG-2025-ACTIVE")

    with pytest.raises(DuplicateCertificate) as exc_info:
        await service.update_status(suspended.id, CertificateStatusEnum.active, actor)

    assert exc_info.value.existing_number == "ORG-2025-ACTIVE"
    assert world.store.get(Certificate, suspended.id).status == CertificateStatusEnum.suspended


@pytest.mark.asyncio
async def test_renewal_pending_cannot_be_set_directly(
    service: CertificateService, world: SimpleNamespace, actor: Actor
) -> None:
    certificate = _seed_certificate(world, world.farm.id, "ORG-2025-N")

    with pytest.raises(BusinessRuleError):
        await service.update_status(certificate.id, CertificateStatusEnum.renewal_pending, actor)


@pytest.mark.asyncio
async def test_document_served_from_store(
    service: CertificateService, issuer: CertificateIssuer, world: SimpleNamespace, actor: Actor, renderer
) -> None:
    issued = await issuer.issue(world.farm.id, actor)
    render_count = len(renderer.calls)

    certificate, pdf = await service.get_document(issued.certificate.id)

    assert pdf == issued.pdf
    assert certificate.id == issued.certificate.id
    assert len(renderer.calls) == render_count


@pytest.mark.asyncio
async def test_missing_document_is_rendered_again(
    service: CertificateService, issuer: CertificateIssuer, world: SimpleNamespace, actor: Actor, document_store
) -> None:
    issued = await issuer.issue(world.farm.id, actor)
    document_store.documents.clear()

    _, pdf = await service.get_document(issued.certificate.id)

    assert pdf.startswith(b"%PDF")
    assert document_store.documents[issued.certificate.pdf_url] == pdf


@pytest.mark.asyncio
async def test_certificate_without_reference_gets_one(
    service: CertificateService, world: SimpleNamespace, document_store
) -> None:
    certificate = _seed_certificate(world, world.farm.id, "ORG-2025-NOPDF")

    _, pdf = await service.get_document(certificate.id)

    stored = world.store.get(Certificate, certificate.id)
    assert stored.pdf_url == "/certificates/certificate-ORG-2025-NOPDF.pdf"
    assert document_store.documents[stored.pdf_url] == pdf


@pytest.mark.asyncio
async def test_unreadable_document_is_rendered_again(
    service: CertificateService, issuer: CertificateIssuer, world: SimpleNamespace, actor: Actor, document_store
) -> None:
    issued = await issuer.issue(world.farm.id, actor)
    document_store.load_error = PermissionError(13, "Permission denied", issued.certificate.pdf_url)

    certificate, pdf = await service.get_document(issued.certificate.id)

    assert certificate.id == issued.certificate.id
    assert pdf.startswith(b"%PDF")
    assert document_store.documents[issued.certificate.pdf_url] == pdf
