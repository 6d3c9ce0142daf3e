"""Persistence boundary for the certification core.

Services receive a ``CertificationRepository`` instead of reaching for a
session or module-level helpers, so one request's unit of work is explicit
and tests can substitute an in-memory store.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agricert.models.certificate import ACTIVE_CERTIFICATE_INDEX, INSPECTION_CERTIFICATE_INDEX, Certificate
from agricert.models.enums import CertificateStatusEnum, InspectionStatusEnum
from agricert.models.farm import Farm, Farmer
from agricert.models.inspection import Inspection, InspectionStatusHistory
from agricert.models.user import User
from agricert.services.errors import DuplicateCertificate, InspectionAlreadyCertified

_T = TypeVar("_T")


@dataclass(frozen=True, slots=True)
class FarmLabel:
	"""Display names shown next to inspections and certificates in listings."""

	farm_name: str
	farmer_name: str


class CertificationRepository(Protocol):
	"""Operations the core needs from storage.

	``atomic()`` scopes an all-or-nothing unit of work and may nest.
	``add_certificate`` / ``save_certificate`` raise ``DuplicateCertificate``
	when the at-most-one-active-per-farm constraint rejects the write, and
	``InspectionAlreadyCertified`` when the inspection already has a certificate.
	"""

	def atomic(self) -> AbstractAsyncContextManager[None]: ...

	async def get_inspection(self, inspection_id: int, for_update: bool = False) -> Inspection | None: ...

	async def list_inspections(
		self,
		farm_id: int | None = None,
		status: InspectionStatusEnum | None = None,
	) -> list[Inspection]: ...

	async def add_inspection(self, inspection: Inspection) -> Inspection: ...

	async def save_inspection(self, inspection: Inspection) -> Inspection: ...

	async def append_status_history(self, record: InspectionStatusHistory) -> InspectionStatusHistory: ...

	async def list_status_history(self, inspection_id: int) -> list[InspectionStatusHistory]: ...

	async def get_farm(self, farm_id: int) -> Farm | None: ...

	async def get_farmer(self, farmer_id: int) -> Farmer | None: ...

	async def get_user(self, user_id: int) -> User | None: ...

	async def farm_labels(self, farm_ids: Iterable[int]) -> dict[int, FarmLabel]: ...

	async def find_active_certificate(self, farm_id: int) -> Certificate | None: ...

	async def find_certificate_for_inspection(self, inspection_id: int) -> Certificate | None: ...

	async def add_certificate(self, certificate: Certificate) -> Certificate: ...

	async def save_certificate(self, certificate: Certificate) -> Certificate: ...

	async def get_certificate(self, certificate_id: int) -> Certificate | None: ...

	async def list_certificates(self, farm_id: int | None = None) -> list[Certificate]: ...


class SqlCertificationRepository:
	"""``CertificationRepository`` over an async SQLAlchemy session.

	Each ``atomic()`` block is a SAVEPOINT; the caller owns the outer
	transaction and commits it.
	"""

	def __init__(self, db: AsyncSession):
		self.db = db

	@asynccontextmanager
	async def atomic(self) -> AsyncIterator[None]:
		async with self.db.begin_nested():
			yield

	async def get_inspection(self, inspection_id: int, for_update: bool = False) -> Inspection | None:
		stmt = select(Inspection).where(Inspection.id == inspection_id)
		if for_update:
			stmt = stmt.with_for_update().execution_options(populate_existing=True)
		row = await self.db.execute(stmt)
		return row.scalar_one_or_none()

	async def list_inspections(
		self,
		farm_id: int | None = None,
		status: InspectionStatusEnum | None = None,
	) -> list[Inspection]:
		stmt = select(Inspection).order_by(Inspection.scheduled_date.desc(), Inspection.id.desc())
		if farm_id is not None:
			stmt = stmt.where(Inspection.farm_id == farm_id)
		if status is not None:
			stmt = stmt.where(Inspection.status == status)
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def add_inspection(self, inspection: Inspection) -> Inspection:
		return await self._write(inspection)

	async def save_inspection(self, inspection: Inspection) -> Inspection:
		return await self._write(inspection)

	async def append_status_history(self, record: InspectionStatusHistory) -> InspectionStatusHistory:
		return await self._write(record)

	async def list_status_history(self, inspection_id: int) -> list[InspectionStatusHistory]:
		stmt = (
			select(InspectionStatusHistory)
			.where(InspectionStatusHistory.inspection_id == inspection_id)
			.order_by(InspectionStatusHistory.id.asc())
		)
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def get_farm(self, farm_id: int) -> Farm | None:
		row = await self.db.execute(select(Farm).where(Farm.id == farm_id))
		return row.scalar_one_or_none()

	async def get_farmer(self, farmer_id: int) -> Farmer | None:
		row = await self.db.execute(select(Farmer).where(Farmer.id == farmer_id))
		return row.scalar_one_or_none()

	async def get_user(self, user_id: int) -> User | None:
		row = await self.db.execute(select(User).where(User.id == user_id))
		return row.scalar_one_or_none()

	async def farm_labels(self, farm_ids: Iterable[int]) -> dict[int, FarmLabel]:
		ids = set(farm_ids)
		if not ids:
			return {}
		stmt = (
			select(Farm.id, Farm.farm_name, Farmer.name)
			.join(Farmer, Farmer.id == Farm.farmer_id)
			.where(Farm.id.in_(ids))
		)
		rows = await self.db.execute(stmt)
		return {farm_id: FarmLabel(farm_name, farmer_name) for farm_id, farm_name, farmer_name in rows.all()}

	async def find_active_certificate(self, farm_id: int) -> Certificate | None:
		stmt = select(Certificate).where(
			Certificate.farm_id == farm_id,
			Certificate.status == CertificateStatusEnum.active,
		)
		row = await self.db.execute(stmt)
		return row.scalars().first()

	async def find_certificate_for_inspection(self, inspection_id: int) -> Certificate | None:
		row = await self.db.execute(select(Certificate).where(Certificate.inspection_id == inspection_id))
		return row.scalars().first()

	async def add_certificate(self, certificate: Certificate) -> Certificate:
		return await self._write_certificate(certificate)

	async def save_certificate(self, certificate: Certificate) -> Certificate:
		return await self._write_certificate(certificate)

	async def get_certificate(self, certificate_id: int) -> Certificate | None:
		row = await self.db.execute(select(Certificate).where(Certificate.id == certificate_id))
		return row.scalar_one_or_none()

	async def list_certificates(self, farm_id: int | None = None) -> list[Certificate]:
		stmt = select(Certificate).order_by(Certificate.issue_date.desc(), Certificate.id.desc())
		if farm_id is not None:
			stmt = stmt.where(Certificate.farm_id == farm_id)
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def _write_certificate(self, certificate: Certificate) -> Certificate:
		try:
			return await self._write(certificate)
		except IntegrityError as exc:
			if ACTIVE_CERTIFICATE_INDEX in str(exc.orig):
				raise DuplicateCertificate(certificate.farm_id) from exc
			if INSPECTION_CERTIFICATE_INDEX in str(exc.orig):
				raise InspectionAlreadyCertified(certificate.inspection_id) from exc
			raise

	async def _write(self, obj: _T) -> _T:
		self.db.add(obj)
		await self.db.flush()
		await self.db.refresh(obj)
		return obj
