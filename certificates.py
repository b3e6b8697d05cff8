"""
Certificate and on-duty letter rendering and storage.
"""

import io
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from models import CertificateType

load_dotenv()

logger = logging.getLogger(__name__)

STORAGE_DIR = Path(os.getenv("CERTIFICATE_STORAGE_DIR", "storage/certificates"))

BRAND = "Eventify"


@dataclass
class CertificateData:
    event_id: str
    user_id: str
    user_name: str
    event_title: str
    event_date: str
    event_location: str
    type: CertificateType


def format_event_date(value: datetime) -> str:
    return value.strftime("%B %d, %Y")


def certificate_reference(data: CertificateData) -> str:
    prefix = "CERT" if data.type == CertificateType.CERTIFICATE else "OD"
    return f"{prefix}-{data.event_id[:8]}-{data.user_id[:8]}"


def storage_path(user_id: str, event_id: str, cert_type: CertificateType) -> str:
    """Relative storage reference: <user_id>/<type>_<event_id>_<user_id>.pdf"""
    return f"{user_id}/{CertificateType(cert_type).value}_{event_id}_{user_id}.pdf"


def _draw_certificate(pdf: canvas.Canvas, data: CertificateData):
    width, height = landscape(A4)

    def top(y_mm: float) -> float:
        return height - y_mm * mm

    pdf.setFillColorRGB(240 / 255, 240 / 255, 1)
    pdf.rect(0, 0, width, height, fill=1, stroke=0)

    pdf.setStrokeColorRGB(100 / 255, 80 / 255, 220 / 255)
    pdf.setLineWidth(5 * mm)
    pdf.rect(10 * mm, 10 * mm, width - 20 * mm, height - 20 * mm, fill=0, stroke=1)

    centre = width / 2

    pdf.setFillColorRGB(80 / 255, 40 / 255, 180 / 255)
    pdf.setFont("Helvetica-Bold", 30)
    pdf.drawCentredString(centre, top(40), BRAND)
    pdf.setFont("Helvetica-Bold", 24)
    pdf.drawCentredString(centre, top(55), "Certificate of Participation")

    pdf.setFillColorRGB(60 / 255, 60 / 255, 60 / 255)
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(centre, top(75), "This certifies that")

    pdf.setFillColorRGB(80 / 255, 40 / 255, 180 / 255)
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawCentredString(centre, top(85), data.user_name)

    pdf.setFillColorRGB(60 / 255, 60 / 255, 60 / 255)
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(centre, top(95), "has successfully participated in")
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawCentredString(centre, top(105), data.event_title)
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(centre, top(115), f"held on {data.event_date} at {data.event_location}")

    # Signature lines
    pdf.setLineWidth(0.5 * mm)
    pdf.setStrokeColorRGB(100 / 255, 100 / 255, 100 / 255)
    pdf.line(60 * mm, top(150), 110 * mm, top(150))
    pdf.line(187 * mm, top(150), 237 * mm, top(150))
    pdf.setFont("Helvetica", 10)
    pdf.drawString(85 * mm, top(160), "Date")
    pdf.drawString(212 * mm, top(160), "Event Coordinator")

    pdf.setFont("Helvetica", 8)
    pdf.setFillColorRGB(150 / 255, 150 / 255, 150 / 255)
    pdf.drawRightString(270 * mm, top(200), f"Certificate ID: {certificate_reference(data)}")


def _draw_duty_letter(pdf: canvas.Canvas, data: CertificateData, issued_on: datetime):
    width, height = A4

    def top(y_mm: float) -> float:
        return height - y_mm * mm

    centre = width / 2

    pdf.setFillColorRGB(80 / 255, 40 / 255, 180 / 255)
    pdf.setFont("Helvetica-Bold", 20)
    pdf.drawCentredString(centre, top(30), BRAND)
    pdf.setFillColorRGB(100 / 255, 100 / 255, 100 / 255)
    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawCentredString(centre, top(38), "Event Management System")

    pdf.setFillColorRGB(0, 0, 0)
    pdf.setFont("Helvetica", 11)
    pdf.drawRightString(170 * mm, top(50), f"Date: {issued_on.strftime('%d/%m/%Y')}")
    pdf.drawRightString(170 * mm, top(56), f"Ref: {certificate_reference(data)}")

    pdf.setFont("Helvetica-Bold", 14)
    pdf.drawCentredString(centre, top(80), "ON DUTY CERTIFICATE")
    pdf.line(70 * mm, top(82), 140 * mm, top(82))

    body = [
        f'This is to certify that {data.user_name} participated in "{data.event_title}" organized by',
        f"{BRAND} on {data.event_date} at {data.event_location}.",
        "",
        "The student was on duty during the event hours and should be considered present for",
        "their academic commitments during this period.",
        "",
        "The department is requested to consider this as an authorized absence for academic purposes.",
    ]
    text = pdf.beginText(25 * mm, top(95))
    text.setFont("Helvetica", 12)
    text.setLeading(6 * mm)
    for line in body:
        text.textLine(line)
    pdf.drawText(text)

    pdf.setFont("Helvetica", 12)
    pdf.drawString(25 * mm, top(155), "Yours sincerely,")
    pdf.line(25 * mm, top(180), 80 * mm, top(180))
    pdf.drawString(25 * mm, top(185), "Event Coordinator")
    pdf.drawString(25 * mm, top(192), BRAND)


def render_pdf(data: CertificateData, issued_on: Optional[datetime] = None) -> bytes:
    """Render a participation certificate (landscape) or duty letter (portrait) to PDF bytes."""
    buffer = io.BytesIO()
    is_certificate = data.type == CertificateType.CERTIFICATE
    pagesize = landscape(A4) if is_certificate else A4

    pdf = canvas.Canvas(buffer, pagesize=pagesize)
    pdf.setTitle(f"{BRAND} {'Certificate' if is_certificate else 'On-Duty Letter'} - {data.event_title}")
    pdf.setAuthor(BRAND)

    if is_certificate:
        _draw_certificate(pdf, data)
    else:
        _draw_duty_letter(pdf, data, issued_on or datetime.now())

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def save_file(file_path: str, content: bytes) -> Path:
    """Write a rendered document under the storage directory, overwriting any previous copy."""
    target = STORAGE_DIR / file_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    logger.info(f"Stored certificate file {file_path} ({len(content)} bytes)")
    return target


def resolve_file(file_path: str) -> Path:
    target = (STORAGE_DIR / file_path).resolve()
    if STORAGE_DIR.resolve() not in target.parents:
        raise ValueError(f"Certificate path escapes storage directory: {file_path}")
    return target


def delete_file(file_path: Optional[str]):
    if not file_path:
        return
    try:
        resolve_file(file_path).unlink(missing_ok=True)
    except (OSError, ValueError) as e:
        logger.info(f"Could not delete certificate file {file_path}: {e}")
