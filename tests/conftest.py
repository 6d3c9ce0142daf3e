"""Shared pytest fixtures — in-memory certification store, fakes, async test client."""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import inspect as sa_inspect

from agricert.auth.dependencies import get_current_user
from agricert.auth.jwt import create_access_token
from agricert.database import get_db
from agricert.main import app
from agricert.models import (
	Certificate,
	CertificateStatusEnum,
	Farm,
	Farmer,
	Inspection,
	InspectionStatusEnum,
	InspectionStatusHistory,
	User,
	UserRoleEnum,
)
from agricert.routes.certificates import get_certificate_issuer
from agricert.routes.inspections import get_inspection_lifecycle
from agricert.services.actor import Actor
from agricert.services.certificate_identity import validity_period
from agricert.services.certificate_issuer import CertificateIssuer
from agricert.services.errors import DuplicateCertificate, InspectionAlreadyCertified, RenderingFailure
from agricert.services.inspection_lifecycle import InspectionLifecycle
from agricert.services.repository import FarmLabel

# ── In-memory persistence ───────────────────────────────────────────────────


def clone_row(obj: Any) -> Any:
	"""Detached copy of an ORM row: column attributes only, JSON values deep-copied."""
	duplicate = type(obj)()
	_copy_into(duplicate, obj)
	return duplicate


def _copy_into(target: Any, source: Any) -> None:
	for attr in sa_inspect(type(source)).column_attrs:
		setattr(target, attr.key, copy.deepcopy(getattr(source, attr.key)))


def _stamp(obj: Any) -> None:
	now = datetime.now(UTC)
	for name in ("created_at", "updated_at", "changed_at"):
		if hasattr(type(obj), name) and getattr(obj, name) is None:
			setattr(obj, name, now)


class InMemoryStore:
	"""Committed rows shared by every repository in a test, standing in for the database."""

	def __init__(self) -> None:
		self.rows: dict[type, dict[int, Any]] = defaultdict(dict)
		self._ids: dict[type, itertools.count] = defaultdict(lambda: itertools.count(1))
		# ("farm", farm_id) / ("inspection", inspection_id) -> repository holding
		# an uncommitted certificate that occupies that unique slot
		self.active_claims: dict[tuple[str, int], object] = {}

	def next_id(self, model: type) -> int:
		return next(self._ids[model])

	def insert(self, obj: Any) -> Any:
		if obj.id is None:
			obj.id = self.next_id(type(obj))
		_stamp(obj)
		self.rows[type(obj)][obj.id] = clone_row(obj)
		return obj

	def all(self, model: type) -> list[Any]:
		return [clone_row(row) for _, row in sorted(self.rows[model].items())]

	def get(self, model: type, row_id: int) -> Any | None:
		row = self.rows[model].get(row_id)
		return clone_row(row) if row is not None else None

	def active_certificates(self, farm_id: int) -> list[Certificate]:
		return [
			cert
			for cert in self.all(Certificate)
			if cert.farm_id == farm_id and cert.status == CertificateStatusEnum.active
		]


@dataclass
class _UnitOfWork:
	writes: dict[tuple[type, int], Any] = field(default_factory=dict)
	claims: set[tuple[str, int]] = field(default_factory=set)


class InMemoryRepository:
	"""``CertificationRepository`` over an ``InMemoryStore``.

	Writes are buffered per ``atomic()`` block and reach the store only when the
	outermost block exits cleanly; a failing block discards its writes.  An
	uncommitted active certificate claims its farm the way the partial unique
	index does, so a second issuer racing for the same farm gets
	``DuplicateCertificate``; an uncommitted certificate likewise claims its
	inspection (``InspectionAlreadyCertified``).
	"""

	def __init__(self, store: InMemoryStore) -> None:
		self.store = store
		self._units: list[_UnitOfWork] = []
		self._identity: dict[tuple[type, int], Any] = {}

	@asynccontextmanager
	async def atomic(self) -> AsyncIterator[None]:
		unit = _UnitOfWork()
		self._units.append(unit)
		try:
			yield
		except BaseException:
			self._units.pop()
			self._discard(unit)
			raise
		self._units.pop()
		if self._units:
			parent = self._units[-1]
			parent.writes.update(unit.writes)
			parent.claims |= unit.claims
		else:
			for (model, row_id), obj in unit.writes.items():
				self.store.rows[model][row_id] = clone_row(obj)
			self._release(unit.claims)

	async def get_inspection(self, inspection_id: int, for_update: bool = False) -> Inspection | None:
		return self._get(Inspection, inspection_id, refresh=for_update)

	async def add_inspection(self, inspection: Inspection) -> Inspection:
		return self._add(inspection)

	async def save_inspection(self, inspection: Inspection) -> Inspection:
		return self._save(inspection)

	async def append_status_history(self, record: InspectionStatusHistory) -> InspectionStatusHistory:
		return self._add(record)

	async def list_status_history(self, inspection_id: int) -> list[InspectionStatusHistory]:
		return [row for row in self._visible(InspectionStatusHistory) if row.inspection_id == inspection_id]

	async def list_inspections(
		self,
		farm_id: int | None = None,
		status: InspectionStatusEnum | None = None,
	) -> list[Inspection]:
		rows = [
			row
			for row in self._visible(Inspection)
			if (farm_id is None or row.farm_id == farm_id) and (status is None or row.status == status)
		]
		return sorted(rows, key=lambda row: (row.scheduled_date, row.id), reverse=True)

	async def get_farm(self, farm_id: int) -> Farm | None:
		return self._get(Farm, farm_id)

	async def get_farmer(self, farmer_id: int) -> Farmer | None:
		return self._get(Farmer, farmer_id)

	async def get_user(self, user_id: int) -> User | None:
		return self._get(User, user_id)

	async def farm_labels(self, farm_ids: Iterable[int]) -> dict[int, FarmLabel]:
		labels: dict[int, FarmLabel] = {}
		for farm_id in set(farm_ids):
			farm = self._get(Farm, farm_id)
			farmer = self._get(Farmer, farm.farmer_id) if farm is not None else None
			if farm is not None and farmer is not None:
				labels[farm_id] = FarmLabel(farm_name=farm.farm_name, farmer_name=farmer.name)
		return labels

	async def find_active_certificate(self, farm_id: int) -> Certificate | None:
		# a real query suspends here; let concurrent issuers interleave
		await asyncio.sleep(0)
		for cert in self._visible(Certificate):
			if cert.farm_id == farm_id and cert.status == CertificateStatusEnum.active:
				return cert
		return None

	async def find_certificate_for_inspection(self, inspection_id: int) -> Certificate | None:
		for cert in self._visible(Certificate):
			if cert.inspection_id == inspection_id:
				return cert
		return None

	async def add_certificate(self, certificate: Certificate) -> Certificate:
		certificate.id = self.store.next_id(Certificate)
		self._guard_unique(certificate)
		return self._add(certificate)

	async def save_certificate(self, certificate: Certificate) -> Certificate:
		self._guard_unique(certificate)
		return self._save(certificate)

	async def get_certificate(self, certificate_id: int) -> Certificate | None:
		return self._get(Certificate, certificate_id)

	async def list_certificates(self, farm_id: int | None = None) -> list[Certificate]:
		certs = [cert for cert in self._visible(Certificate) if farm_id is None or cert.farm_id == farm_id]
		return sorted(certs, key=lambda cert: (cert.issue_date, cert.id), reverse=True)

	# ── internals ───────────────────────────────────────────────────────────

	def _guard_unique(self, certificate: Certificate) -> None:
		others = [other for other in self._visible(Certificate) if other.id != certificate.id]
		if certificate.status == CertificateStatusEnum.active:
			farm_id = certificate.farm_id
			if any(other.farm_id == farm_id and other.status == CertificateStatusEnum.active for other in others):
				raise DuplicateCertificate(farm_id)
			self._claim(("farm", farm_id), DuplicateCertificate(farm_id))
		if certificate.inspection_id is not None:
			inspection_id = certificate.inspection_id
			if any(other.inspection_id == inspection_id for other in others):
				raise InspectionAlreadyCertified(inspection_id)
			self._claim(("inspection", inspection_id), InspectionAlreadyCertified(inspection_id))

	def _claim(self, slot: tuple[str, int], conflict: Exception) -> None:
		holder = self.store.active_claims.get(slot)
		if holder is not None and holder is not self:
			raise conflict
		if holder is None and self._units:
			self.store.active_claims[slot] = self
			self._units[-1].claims.add(slot)

	def _add(self, obj: Any) -> Any:
		if obj.id is None:
			obj.id = self.store.next_id(type(obj))
		_stamp(obj)
		return self._write(obj)

	def _save(self, obj: Any) -> Any:
		if hasattr(type(obj), "updated_at"):
			obj.updated_at = datetime.now(UTC)
		return self._write(obj)

	def _write(self, obj: Any) -> Any:
		key = (type(obj), obj.id)
		self._identity[key] = obj
		if self._units:
			self._units[-1].writes[key] = obj
		else:
			self.store.rows[type(obj)][obj.id] = clone_row(obj)
		return obj

	def _get(self, model: type, row_id: int, refresh: bool = False) -> Any | None:
		key = (model, row_id)
		stored = self.store.rows[model].get(row_id)
		if key in self._identity:
			obj = self._identity[key]
			if refresh and stored is not None and not self._is_pending(key):
				_copy_into(obj, stored)
			return obj
		if stored is None:
			return None
		obj = clone_row(stored)
		self._identity[key] = obj
		return obj

	def _visible(self, model: type) -> list[Any]:
		ids = set(self.store.rows[model])
		ids |= {row_id for (kind, row_id) in self._identity if kind is model}
		return [row for row in (self._get(model, row_id) for row_id in sorted(ids)) if row is not None]

	def _is_pending(self, key: tuple[type, int]) -> bool:
		return any(key in unit.writes for unit in self._units)

	def _discard(self, unit: _UnitOfWork) -> None:
		for key in unit.writes:
			if not self._is_pending(key):
				self._identity.pop(key, None)
		self._release(unit.claims)

	def _release(self, slots: set[tuple[str, int]]) -> None:
		for slot in slots:
			if self.store.active_claims.get(slot) is self:
				del self.store.active_claims[slot]


# ── Collaborator fakes ──────────────────────────────────────────────────────


class FakeRenderer:
	"""Records the facts it is given; can be told to fail or to stall."""

	def __init__(self) -> None:
		self.calls: list[SimpleNamespace] = []
		self.fail = False
		self.delay = 0.0

	async def render(self, certificate: Any, farm: Any, farmer: Any, inspection: Any = None) -> bytes:
		self.calls.append(SimpleNamespace(certificate=certificate, farm=farm, farmer=farmer, inspection=inspection))
		await asyncio.sleep(self.delay)
		if self.fail:
			raise RenderingFailure("renderer unavailable")
		return b"%PDF-1.4 fake " + certificate.number.encode("ascii")


class FakeDocumentStore:
	"""Dict-backed document store; can be told to fail, to stall, or to refuse reads."""

	def __init__(self) -> None:
		self.documents: dict[str, bytes] = {}
		self.fail = False
		self.delay = 0.0
		self.load_error: Exception | None = None
		self.deleted: list[str] = []

	async def save(self, filename: str, data: bytes) -> str:
		await asyncio.sleep(self.delay)
		if self.fail:
			raise OSError("No space left on device")
		reference = f"/certificates/{filename}"
		self.documents[reference] = data
		return reference

	async def load(self, reference: str) -> bytes:
		if self.load_error is not None:
			raise self.load_error
		try:
			return self.documents[reference]
		except KeyError as exc:
			raise FileNotFoundError(reference) from exc

	async def delete(self, reference: str) -> None:
		self.deleted.append(reference)
		self.documents.pop(reference, None)


class FakeAsyncSession:
	def __init__(self) -> None:
		self.commit = AsyncMock()
		self.rollback = AsyncMock()
		self.close = AsyncMock()
		self.execute = AsyncMock()


class FakeRedis:
	def __init__(self) -> None:
		self._counter: dict[str, int] = {}
		self.incr = AsyncMock(side_effect=self._incr)
		self.expire = AsyncMock(return_value=True)
		self.ping = AsyncMock(return_value=True)

	async def _incr(self, key: str) -> int:
		value = self._counter.get(key, 0) + 1
		self._counter[key] = value
		return value

	def reset_counters(self) -> None:
		self._counter.clear()


# ── Seed data and service fixtures ──────────────────────────────────────────


@pytest.fixture
def store() -> InMemoryStore:
	return InMemoryStore()


@pytest.fixture
def world(store: InMemoryStore) -> SimpleNamespace:
	"""One farmer with two farms plus one user per role, committed to ``store``."""
	farmer = store.insert(
		Farmer(
			name="Wanjiku Kamau",
			email="wanjiku@example.co.ke",
			phone="+254700000001",
			id_number="28145530",
			county="Kiambu",
		)
	)
	farm = store.insert(
		Farm(
			farmer_id=farmer.id,
			farm_name="Green Valley Farm",
			location="Limuru, Kiambu",
			total_area=2.5,
			crop_types=["kale", "french beans"],
		)
	)
	other_farm = store.insert(
		Farm(
			farmer_id=farmer.id,
			farm_name="Hillside Plot",
			location="Githunguri, Kiambu",
			total_area=None,
			crop_types=[],
		)
	)
	inspector = store.insert(
		User(uid="uid-inspector", email="inspector@test.local", name="Otieno Inspector", role=UserRoleEnum.inspector, is_active=True)
	)
	agronomist = store.insert(
		User(uid="uid-agronomist", email="agronomist@test.local", name="Njeri Agronomist", role=UserRoleEnum.agronomist, is_active=True)
	)
	admin = store.insert(
		User(uid="uid-admin", email="admin@test.local", name="Admin", role=UserRoleEnum.admin, is_active=True)
	)
	return SimpleNamespace(
		store=store,
		farmer=farmer,
		farm=farm,
		other_farm=other_farm,
		inspector=inspector,
		agronomist=agronomist,
		admin=admin,
	)


@pytest.fixture
def renderer() -> FakeRenderer:
	return FakeRenderer()


@pytest.fixture
def document_store() -> FakeDocumentStore:
	return FakeDocumentStore()


def build_issuer(repo: Any, renderer: Any, document_store: Any, timeout_seconds: float = 2.0) -> CertificateIssuer:
	return CertificateIssuer(
		repo,
		renderer,
		document_store,
		validity=validity_period(1),
		number_prefix="ORG",
		default_scope="Organic crop production",
		timeout_seconds=timeout_seconds,
	)


@pytest.fixture
def repo(world: SimpleNamespace) -> InMemoryRepository:
	return InMemoryRepository(world.store)


@pytest.fixture
def issuer(repo: InMemoryRepository, renderer: FakeRenderer, document_store: FakeDocumentStore) -> CertificateIssuer:
	return build_issuer(repo, renderer, document_store)


@pytest.fixture
def lifecycle(repo: InMemoryRepository, issuer: CertificateIssuer) -> InspectionLifecycle:
	return InspectionLifecycle(repo, issuer)


@pytest.fixture
def make_lifecycle(
	world: SimpleNamespace,
	renderer: FakeRenderer,
	document_store: FakeDocumentStore,
) -> Callable[[], InspectionLifecycle]:
	"""A fresh lifecycle on its own repository, i.e. one per concurrent request."""

	def _make() -> InspectionLifecycle:
		repo = InMemoryRepository(world.store)
		return InspectionLifecycle(repo, build_issuer(repo, renderer, document_store))

	return _make


@pytest.fixture
def actor(world: SimpleNamespace) -> Actor:
	return Actor(user_id=world.agronomist.id, label=world.agronomist.email)


@pytest.fixture
def eligible_answers() -> dict[str, bool]:
	"""Four of five compliant: scores exactly 80."""
	return {
		"synthetic_inputs": False,
		"buffer_zones": True,
		"organic_seed": True,
		"compost_management": True,
		"record_keeping": True,
	}


@pytest.fixture
def failing_answers() -> dict[str, bool]:
	"""Three of five compliant: scores 60."""
	return {
		"synthetic_inputs": False,
		"buffer_zones": False,
		"organic_seed": True,
		"compost_management": True,
		"record_keeping": True,
	}


@pytest.fixture
def complete_inspection(
	lifecycle: InspectionLifecycle,
	world: SimpleNamespace,
	actor: Actor,
) -> Callable[..., Awaitable[Inspection]]:
	"""Drive a new inspection from scheduled to completed with the given answers."""

	async def _complete(
		answers: dict[str, bool],
		farm_id: int | None = None,
		using: InspectionLifecycle | None = None,
	) -> Inspection:
		service = using or lifecycle
		inspection = await service.schedule(
			farm_id or world.farm.id,
			date(2026, 10, 1),
			actor,
			inspector_id=world.inspector.id,
		)
		await service.update_checklist(inspection.id, answers, actor)
		await service.transition_status(inspection.id, "in_progress", actor)
		return await service.transition_status(inspection.id, "completed", actor)

	return _complete


# ── HTTP clients ────────────────────────────────────────────────────────────


@pytest.fixture
def fake_db_session() -> FakeAsyncSession:
	"""A lightweight async-session stub for dependency overrides in API tests."""
	return FakeAsyncSession()


@pytest.fixture
def fake_redis() -> FakeRedis:
	return FakeRedis()


@asynccontextmanager
async def _noop_lifespan(_: Any) -> AsyncIterator[None]:
	yield


@pytest.fixture
async def client(
	fake_db_session: FakeAsyncSession,
	world: SimpleNamespace,
	lifecycle: InspectionLifecycle,
	issuer: CertificateIssuer,
) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled, an admin caller and in-memory services."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	async def override_current_user() -> User:
		return world.admin

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_current_user] = override_current_user
	app.dependency_overrides[get_inspection_lifecycle] = lambda: lifecycle
	app.dependency_overrides[get_certificate_issuer] = lambda: issuer
	original_lifespan = app.router.lifespan_context
	app.router.lifespan_context = _noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()
	app.state.redis = None


@pytest.fixture
async def auth_client(fake_db_session: FakeAsyncSession) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with DB override only (real auth dependencies active)."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	app.dependency_overrides[get_db] = override_get_db
	original_lifespan = app.router.lifespan_context
	app.router.lifespan_context = _noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()
	app.state.redis = None


@pytest.fixture
def as_user(world: SimpleNamespace) -> Callable[[User], None]:
	"""Switch the ``client`` caller to another seeded user."""

	def _switch(user: User) -> None:
		async def override_current_user() -> User:
			return user

		app.dependency_overrides[get_current_user] = override_current_user

	return _switch


@pytest.fixture
def access_token(world: SimpleNamespace) -> str:
	return create_access_token(str(world.agronomist.id), expires_minutes=30)
