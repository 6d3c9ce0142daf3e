"""Storage for rendered certificate PDFs.

References returned by ``save`` are opaque to callers; the local store uses
``<url_prefix>/<filename>`` so the HTTP layer can serve them directly.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol


class CertificateDocumentStore(Protocol):
	async def save(self, filename: str, data: bytes) -> str: ...

	async def load(self, reference: str) -> bytes: ...

	async def delete(self, reference: str) -> None: ...


class LocalCertificateStore:
	"""Writes certificate PDFs into a directory on the local filesystem."""

	def __init__(self, root: str | Path, url_prefix: str = "/certificates"):
		self.root = Path(root)
		self.url_prefix = url_prefix.rstrip("/")

	async def save(self, filename: str, data: bytes) -> str:
		path = self._path_for(filename)
		await asyncio.to_thread(self._write, path, data)
		return f"{self.url_prefix}/{path.name}"

	async def load(self, reference: str) -> bytes:
		path = self._path_for(reference)
		return await asyncio.to_thread(path.read_bytes)

	async def delete(self, reference: str) -> None:
		path = self._path_for(reference)
		await asyncio.to_thread(path.unlink, missing_ok=True)

	def _path_for(self, reference: str) -> Path:
		# only the final component is honoured so references cannot escape root
		name = Path(reference).name
		if not name:
			raise FileNotFoundError(reference)
		return self.root / name

	@staticmethod
	def _write(path: Path, data: bytes) -> None:
		path.parent.mkdir(parents=True, exist_ok=True)
		tmp = path.with_suffix(path.suffix + ".tmp")
		tmp.write_bytes(data)
		tmp.replace(path)
