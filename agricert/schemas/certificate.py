"""Pydantic request/response schemas for certificates."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from agricert.models.enums import CertificateStatusEnum


class CertificateIssueRequest(BaseModel):
	farm_id: int = Field(gt=0)
	inspection_id: int | None = Field(default=None, gt=0)
	scope: str | None = Field(default=None, min_length=1, max_length=1000)


class CertificateStatusUpdate(BaseModel):
	status: CertificateStatusEnum


class CertificateRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	certificate_number: str
	farm_id: int
	inspection_id: int | None = None
	issue_date: date
	expiry_date: date
	status: CertificateStatusEnum
	certifying_body: str
	scope: str
	crop_types: list[str] = Field(default_factory=list)
	pdf_url: str | None = None
	issued_by: int | None = None
	created_at: datetime | None = None


class CertificateListItemRead(CertificateRead):
	farm_name: str | None = None
	farmer_name: str | None = None


class CertificateListRead(BaseModel):
	items: list[CertificateListItemRead] = Field(default_factory=list)
