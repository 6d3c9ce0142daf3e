"""Certificate PDF rendering.

``CertificateDocumentRenderer`` is the boundary the issuer depends on; the
facts dataclasses are everything a certificate must show.  The reportlab
implementation builds the document in a worker thread so the event loop
keeps serving other requests.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from agricert.services.errors import RenderingFailure

PRIMARY = colors.HexColor("#10B981")
DARK = colors.HexColor("#374151")
LIGHT = colors.HexColor("#9CA3AF")


@dataclass(frozen=True, slots=True)
class CertificateFacts:
	number: str
	issue_date: date
	expiry_date: date
	scope: str
	certifying_body: str


@dataclass(frozen=True, slots=True)
class FarmFacts:
	name: str
	location: str
	area: float | None
	crop_types: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FarmerFacts:
	name: str
	email: str
	phone: str
	id_number: str


@dataclass(frozen=True, slots=True)
class InspectionFacts:
	score: int | None
	inspector_name: str | None


class CertificateDocumentRenderer(Protocol):
	async def render(
		self,
		certificate: CertificateFacts,
		farm: FarmFacts,
		farmer: FarmerFacts,
		inspection: InspectionFacts | None = None,
	) -> bytes: ...


class ReportLabCertificateRenderer:
	"""A4 single-page certificate built with reportlab platypus."""

	async def render(
		self,
		certificate: CertificateFacts,
		farm: FarmFacts,
		farmer: FarmerFacts,
		inspection: InspectionFacts | None = None,
	) -> bytes:
		try:
			return await asyncio.to_thread(self.build, certificate, farm, farmer, inspection)
		except RenderingFailure:
			raise
		except Exception as exc:
			raise RenderingFailure(str(exc) or exc.__class__.__name__) from exc

	def build(
		self,
		certificate: CertificateFacts,
		farm: FarmFacts,
		farmer: FarmerFacts,
		inspection: InspectionFacts | None = None,
	) -> bytes:
		buffer = io.BytesIO()
		doc = SimpleDocTemplate(
			buffer,
			pagesize=A4,
			rightMargin=2 * cm,
			leftMargin=2 * cm,
			topMargin=1.5 * cm,
			bottomMargin=1.5 * cm,
			title=f"Organic Certificate {certificate.number}",
		)

		styles = getSampleStyleSheet()
		title_style = ParagraphStyle(
			"CertTitle",
			parent=styles["Heading1"],
			fontSize=26,
			alignment=TA_CENTER,
			textColor=DARK,
			spaceAfter=6,
		)
		subtitle_style = ParagraphStyle(
			"CertSubtitle",
			parent=styles["Normal"],
			fontSize=16,
			alignment=TA_CENTER,
			textColor=PRIMARY,
			spaceAfter=12,
		)
		centered = ParagraphStyle("CertCentered", parent=styles["Normal"], fontSize=11, alignment=TA_CENTER, textColor=DARK)
		holder_style = ParagraphStyle(
			"CertHolder",
			parent=styles["Normal"],
			fontSize=20,
			leading=26,
			alignment=TA_CENTER,
			textColor=PRIMARY,
		)
		small = ParagraphStyle("CertSmall", parent=styles["Normal"], fontSize=8, alignment=TA_CENTER, textColor=LIGHT)

		elements: list = [
			Paragraph("ORGANIC CERTIFICATION", title_style),
			Paragraph("CERTIFICATE", subtitle_style),
			HRFlowable(width="100%", thickness=1, color=PRIMARY),
			Spacer(1, 12),
			Paragraph(f"<b>{escape(certificate.certifying_body)}</b>", centered),
			Paragraph("Accredited Organic Agriculture Certification Body", small),
			Spacer(1, 16),
			Paragraph(f"<b>Certificate No: {escape(certificate.number)}</b>", centered),
			Spacer(1, 16),
			Paragraph("This is to certify that:", centered),
			Spacer(1, 8),
			Paragraph(f"<b>{escape(farmer.name)}</b>", holder_style),
			Paragraph(
				f"ID No: {escape(farmer.id_number)} | {escape(farmer.email)} | {escape(farmer.phone)}",
				small,
			),
			Spacer(1, 12),
		]

		area = f"{farm.area:g} hectares" if farm.area is not None else "Not recorded"
		farm_table = Table(
			[
				["Farm", farm.name],
				["Location", farm.location],
				["Area", area],
				["Scope", certificate.scope],
				["Issue Date", certificate.issue_date.isoformat()],
				["Expiry Date", certificate.expiry_date.isoformat()],
			],
			colWidths=[4 * cm, 11 * cm],
		)
		farm_table.setStyle(
			TableStyle(
				[
					("TEXTCOLOR", (0, 0), (0, -1), PRIMARY),
					("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
					("LINEBELOW", (0, 0), (-1, -1), 0.25, LIGHT),
					("VALIGN", (0, 0), (-1, -1), "TOP"),
				]
			)
		)
		elements.append(farm_table)
		elements.append(Spacer(1, 12))
		elements.append(
			Paragraph(
				"has been inspected and certified as compliant with organic agriculture "
				"standards for the production of:",
				centered,
			)
		)
		elements.append(Spacer(1, 6))
		for crop in farm.crop_types or ["Organic crops"]:
			elements.append(Paragraph(f"&bull; {escape(crop)}", centered))

		if inspection is not None:
			elements.append(Spacer(1, 12))
			if inspection.score is not None:
				elements.append(Paragraph(f"Compliance Score: {inspection.score}%", centered))
			if inspection.inspector_name:
				elements.append(Paragraph(f"Inspector: {escape(inspection.inspector_name)}", centered))

		elements.extend(
			[
				Spacer(1, 30),
				Paragraph("_____________________________", centered),
				Paragraph("Authorized Signature", small),
				Paragraph(escape(certificate.certifying_body), small),
				Spacer(1, 12),
				HRFlowable(width="100%", thickness=0.5, color=LIGHT),
				Paragraph(
					"This certificate is valid only when accompanied by the current inspection report.",
					small,
				),
			]
		)

		doc.build(elements)
		return buffer.getvalue()
