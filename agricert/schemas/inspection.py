"""Pydantic request/response schemas for inspections."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from agricert.models.enums import InspectionStatusEnum
from agricert.schemas.certificate import CertificateRead


class ChecklistQuestionRead(BaseModel):
	key: str
	question: str


class ChecklistQuestionsRead(BaseModel):
	eligibility_threshold: int
	items: list[ChecklistQuestionRead] = Field(default_factory=list)


class ChecklistItemRead(ChecklistQuestionRead):
	answer: bool | None = None


class InspectionCreate(BaseModel):
	farm_id: int = Field(gt=0)
	inspector_id: int | None = Field(default=None, gt=0)
	scheduled_date: date


class ChecklistUpdate(BaseModel):
	# Keys are validated by the checklist service so unknown keys get a typed error.
	answers: dict[str, StrictBool | None] = Field(min_length=1)


class FindingsUpdate(BaseModel):
	findings: str | None = None
	recommendations: str | None = None
	notes: str | None = None
	violations: list[str] | None = None


class StatusTransitionRequest(BaseModel):
	status: InspectionStatusEnum
	reason: str | None = Field(default=None, max_length=2000)


class ApproveRequest(BaseModel):
	reason: str | None = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
	reason: str = Field(min_length=1, max_length=2000)


class InspectionRead(BaseModel):
	id: int
	farm_id: int
	inspector_id: int | None = None
	scheduled_date: date
	inspection_date: date | None = None
	status: InspectionStatusEnum
	checklist: list[ChecklistItemRead] = Field(default_factory=list)
	compliance_score: int | None = None
	is_eligible_for_certification: bool = False
	findings: str | None = None
	recommendations: str | None = None
	notes: str | None = None
	violations: list[str] = Field(default_factory=list)
	updated_by: str | None = None
	allowed_transitions: list[InspectionStatusEnum] = Field(default_factory=list)
	created_at: datetime | None = None
	updated_at: datetime | None = None


class InspectionListItemRead(InspectionRead):
	farm_name: str | None = None
	farmer_name: str | None = None


class InspectionListRead(BaseModel):
	items: list[InspectionListItemRead] = Field(default_factory=list)


class StatusHistoryRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	old_status: InspectionStatusEnum | None = None
	new_status: InspectionStatusEnum
	changed_by: str
	reason: str | None = None
	changed_at: datetime | None = None


class StatusHistoryListRead(BaseModel):
	inspection_id: int
	items: list[StatusHistoryRead] = Field(default_factory=list)


class ApprovalRead(BaseModel):
	inspection: InspectionRead
	certificate: CertificateRead
