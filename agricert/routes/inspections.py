"""Inspection lifecycle routes: scheduling, checklist, status changes, approval."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from agricert.auth.dependencies import actor_for, require_role
from agricert.auth.models import User
from agricert.config import get_settings
from agricert.database import get_db
from agricert.models.enums import InspectionStatusEnum, UserRoleEnum
from agricert.schemas.certificate import CertificateRead
from agricert.schemas.inspection import (
	ApprovalRead,
	ApproveRequest,
	ChecklistItemRead,
	ChecklistQuestionRead,
	ChecklistQuestionsRead,
	ChecklistUpdate,
	FindingsUpdate,
	InspectionCreate,
	InspectionListItemRead,
	InspectionListRead,
	InspectionRead,
	RejectRequest,
	StatusHistoryListRead,
	StatusHistoryRead,
	StatusTransitionRequest,
)
from agricert.services.certificate_issuer import CertificateIssuer
from agricert.services.checklist import CHECKLIST_QUESTIONS, ELIGIBILITY_THRESHOLD, checklist_items
from agricert.services.errors import CertificationError
from agricert.services.inspection_lifecycle import InspectionLifecycle, allowed_transitions
from agricert.services.repository import SqlCertificationRepository

router = APIRouter(prefix="/inspections", tags=["inspections"])

_FIELD_ROLES = (UserRoleEnum.admin, UserRoleEnum.agronomist, UserRoleEnum.inspector)
_DECISION_ROLES = (UserRoleEnum.admin, UserRoleEnum.agronomist)


def get_inspection_lifecycle(db: AsyncSession = Depends(get_db)) -> InspectionLifecycle:
	repo = SqlCertificationRepository(db)
	return InspectionLifecycle(repo, CertificateIssuer.from_settings(repo, get_settings()))


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, CertificationError):
		return HTTPException(
			status_code=exc.http_status,
			detail={"error": exc.code, "message": str(exc), **exc.context()},
		)
	return HTTPException(
		status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
		detail="Unexpected inspection service failure",
	)


def _to_inspection_read(inspection: Any) -> InspectionRead:
	return InspectionRead(
		id=inspection.id,
		farm_id=inspection.farm_id,
		inspector_id=inspection.inspector_id,
		scheduled_date=inspection.scheduled_date,
		inspection_date=inspection.inspection_date,
		status=inspection.status,
		checklist=[
			ChecklistItemRead(key=item.key.value, question=item.question, answer=item.answer)
			for item in checklist_items(inspection.checklist)
		],
		compliance_score=inspection.compliance_score,
		is_eligible_for_certification=bool(inspection.is_eligible_for_certification),
		findings=inspection.findings,
		recommendations=inspection.recommendations,
		notes=inspection.notes,
		violations=list(inspection.violations or []),
		updated_by=inspection.updated_by,
		allowed_transitions=sorted(allowed_transitions(inspection.status)),
		created_at=getattr(inspection, "created_at", None),
		updated_at=getattr(inspection, "updated_at", None),
	)


def _wants_pdf(request: Request) -> bool:
	return "application/pdf" in request.headers.get("accept", "").lower()


@router.get("/checklist", response_model=ChecklistQuestionsRead)
async def get_checklist_questions(
	_user: User = Depends(require_role(*_FIELD_ROLES)),
) -> ChecklistQuestionsRead:
	return ChecklistQuestionsRead(
		eligibility_threshold=ELIGIBILITY_THRESHOLD,
		items=[
			ChecklistQuestionRead(key=key.value, question=question)
			for key, question in CHECKLIST_QUESTIONS.items()
		],
	)


@router.get("", response_model=InspectionListRead)
async def list_inspections(
	farm_id: int | None = Query(default=None, gt=0),
	status_filter: InspectionStatusEnum | None = Query(default=None, alias="status"),
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	_user: User = Depends(require_role(*_FIELD_ROLES)),
) -> InspectionListRead:
	try:
		listings = await lifecycle.list_inspections(farm_id, status_filter)
	except Exception as exc:
		raise _map_error(exc) from exc
	return InspectionListRead(
		items=[
			InspectionListItemRead(
				**_to_inspection_read(listing.inspection).model_dump(),
				farm_name=listing.farm_name,
				farmer_name=listing.farmer_name,
			)
			for listing in listings
		]
	)


@router.post("", response_model=InspectionRead, status_code=status.HTTP_201_CREATED)
async def schedule_inspection(
	payload: InspectionCreate,
	db: AsyncSession = Depends(get_db),
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	user: User = Depends(require_role(*_FIELD_ROLES)),
) -> InspectionRead:
	try:
		inspection = await lifecycle.schedule(
			payload.farm_id,
			payload.scheduled_date,
			actor_for(user),
			inspector_id=payload.inspector_id,
		)
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_inspection_read(inspection)


@router.get("/{inspection_id}", response_model=InspectionRead)
async def get_inspection(
	inspection_id: int,
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	_user: User = Depends(require_role(*_FIELD_ROLES)),
) -> InspectionRead:
	try:
		inspection = await lifecycle.get(inspection_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_inspection_read(inspection)


@router.get("/{inspection_id}/history", response_model=StatusHistoryListRead)
async def get_status_history(
	inspection_id: int,
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	_user: User = Depends(require_role(*_FIELD_ROLES)),
) -> StatusHistoryListRead:
	try:
		records = await lifecycle.status_history(inspection_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return StatusHistoryListRead(
		inspection_id=inspection_id,
		items=[StatusHistoryRead.model_validate(record) for record in records],
	)


@router.put("/{inspection_id}/checklist", response_model=InspectionRead)
async def update_checklist(
	inspection_id: int,
	payload: ChecklistUpdate,
	db: AsyncSession = Depends(get_db),
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	user: User = Depends(require_role(*_FIELD_ROLES)),
) -> InspectionRead:
	try:
		inspection = await lifecycle.update_checklist(inspection_id, payload.answers, actor_for(user))
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_inspection_read(inspection)


@router.patch("/{inspection_id}", response_model=InspectionRead)
async def update_findings(
	inspection_id: int,
	payload: FindingsUpdate,
	db: AsyncSession = Depends(get_db),
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	user: User = Depends(require_role(*_FIELD_ROLES)),
) -> InspectionRead:
	try:
		inspection = await lifecycle.update_findings(
			inspection_id,
			actor_for(user),
			**payload.model_dump(exclude_unset=True),
		)
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_inspection_read(inspection)


@router.post("/{inspection_id}/status", response_model=InspectionRead)
async def transition_status(
	inspection_id: int,
	payload: StatusTransitionRequest,
	db: AsyncSession = Depends(get_db),
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	user: User = Depends(require_role(*_FIELD_ROLES)),
) -> InspectionRead:
	decision = payload.status in (InspectionStatusEnum.approved, InspectionStatusEnum.rejected)
	if decision and user.role not in _DECISION_ROLES:
		raise HTTPException(
			status_code=status.HTTP_403_FORBIDDEN,
			detail={"error": "forbidden", "message": "Insufficient role"},
		)
	try:
		inspection = await lifecycle.transition_status(
			inspection_id,
			payload.status,
			actor_for(user),
			payload.reason,
		)
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_inspection_read(inspection)


@router.post("/{inspection_id}/approve", response_model=ApprovalRead)
async def approve_inspection(
	inspection_id: int,
	request: Request,
	payload: ApproveRequest | None = None,
	db: AsyncSession = Depends(get_db),
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	user: User = Depends(require_role(*_DECISION_ROLES)),
) -> ApprovalRead | Response:
	reason = payload.reason if payload is not None else None
	try:
		result = await lifecycle.approve(inspection_id, actor_for(user), reason)
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc

	if _wants_pdf(request):
		filename = CertificateIssuer.document_filename(result.certificate)
		return Response(
			content=result.pdf,
			media_type="application/pdf",
			headers={"Content-Disposition": f'attachment; filename="{filename}"'},
		)
	return ApprovalRead(
		inspection=_to_inspection_read(result.inspection),
		certificate=CertificateRead.model_validate(result.certificate),
	)


@router.post("/{inspection_id}/reject", response_model=InspectionRead)
async def reject_inspection(
	inspection_id: int,
	payload: RejectRequest,
	db: AsyncSession = Depends(get_db),
	lifecycle: InspectionLifecycle = Depends(get_inspection_lifecycle),
	user: User = Depends(require_role(*_DECISION_ROLES)),
) -> InspectionRead:
	try:
		inspection = await lifecycle.reject(inspection_id, actor_for(user), payload.reason)
		await db.commit()
	except Exception as exc:
		raise _map_error(exc) from exc
	return _to_inspection_read(inspection)
