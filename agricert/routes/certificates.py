"""Certificate routes: direct issuance, listing, status changes, PDF download."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from agricert.auth.dependencies import actor_for, require_role
from agricert.auth.models import User
from agricert.config import get_settings
from agricert.database import get_db
from agricert.models.enums import UserRoleEnum
from agricert.schemas.certificate import (
	CertificateIssueRequest,
	CertificateListItemRead,
	CertificateListRead,
	CertificateRead,
	CertificateStatusUpdate,
)
from agricert.services.certificate_issuer import CertificateIssuer
from agricert.services.certificate_service import CertificateService
from agricert.services.errors import CertificationError
from agricert.services.repository import SqlCertificationRepository

router = APIRouter(prefix="/certificates", tags=["certificates"])

_READ_ROLES = (UserRoleEnum.admin, UserRoleEnum.agronomist, UserRoleEnum.inspector)
_ISSUE_ROLES = (UserRoleEnum.admin, UserRoleEnum.agronomist)


def get_certificate_issuer(db: AsyncSession = Depends(get_db)) -> CertificateIssuer:
	return CertificateIssuer.from_settings(SqlCertificationRepository(db), get_settings())


def get_certificate_service(
	issuer: CertificateIssuer = Depends(get_certificate_issuer),
) -> CertificateService:
	return CertificateService(issuer.repo, issuer)


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, CertificationError):
		return HTTPException(
			status_code=exc.http_status,
			detail={"error": exc.code, "message": str(exc), **exc.context()},
		)
	return HTTPException(
		status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
		detail="Unexpected certificate service failure",
	)


@router.post("", response_model=CertificateRead, status_code=status.HTTP_201_CREATED)
async def issue_certificate(
	payload: CertificateIssueRequest,
	db: AsyncSession = Depends(get_db),
	issuer: CertificateIssuer = Depends(get_certificate_issuer),
	user: User = Depends(require_role(*_ISSUE_ROLES)),
) -> CertificateRead:
	try:
		issued = await issuer.issue(
			payload.farm_id,
			actor_for(user),
			inspection_id=payload.inspection_id,
			scope=payload.scope,
		)
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	return CertificateRead.model_validate(issued.certificate)


@router.get("", response_model=CertificateListRead)
async def list_certificates(
	farm_id: int | None = Query(default=None, gt=0),
	service: CertificateService = Depends(get_certificate_service),
	_user: User = Depends(require_role(*_READ_ROLES)),
) -> CertificateListRead:
	try:
		listings = await service.list_for_farm(farm_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return CertificateListRead(
		items=[
			CertificateListItemRead.model_validate(listing.certificate).model_copy(
				update={"farm_name": listing.farm_name, "farmer_name": listing.farmer_name}
			)
			for listing in listings
		]
	)


@router.get("/{certificate_id}", response_model=CertificateRead)
async def get_certificate(
	certificate_id: int,
	service: CertificateService = Depends(get_certificate_service),
	_user: User = Depends(require_role(*_READ_ROLES)),
) -> CertificateRead:
	try:
		certificate = await service.get(certificate_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return CertificateRead.model_validate(certificate)


@router.get("/{certificate_id}/pdf")
async def download_certificate(
	certificate_id: int,
	db: AsyncSession = Depends(get_db),
	service: CertificateService = Depends(get_certificate_service),
	_user: User = Depends(require_role(*_READ_ROLES)),
) -> Response:
	try:
		certificate, pdf = await service.get_document(certificate_id)
		# a re-rendered document updates pdf_url
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	filename = CertificateIssuer.document_filename(certificate)
	return Response(
		content=pdf,
		media_type="application/pdf",
		headers={"Content-Disposition": f'inline; filename="{filename}"'},
	)


@router.patch("/{certificate_id}/status", response_model=CertificateRead)
async def update_certificate_status(
	certificate_id: int,
	payload: CertificateStatusUpdate,
	db: AsyncSession = Depends(get_db),
	service: CertificateService = Depends(get_certificate_service),
	user: User = Depends(require_role(*_ISSUE_ROLES)),
) -> CertificateRead:
	try:
		certificate = await service.update_status(certificate_id, payload.status, actor_for(user))
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	return CertificateRead.model_validate(certificate)
