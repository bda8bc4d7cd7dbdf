"""
Build the client-facing report PDF: title block, header, content, one section per
visit photo (image + AI analysis), footer.
"""
import io
from typing import Callable, Optional

import httpx
import pytz
import structlog
from PIL import Image as PILImage, ImageOps
from pillow_heif import register_heif_opener
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from ..config import settings
from ..schemas.reports import ReportPdfPayload, PdfPhoto

logger = structlog.get_logger(__name__)

# Phone photos often arrive as HEIC
register_heif_opener()

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
MARGIN = 50
PHOTO_MAX_W = 240
PHOTO_MAX_H = 180

RISK_LABELS = {"low": "Faible", "medium": "Moyen", "high": "Élevé"}
RISK_COLORS = {"low": colors.HexColor("#15803d"), "medium": colors.HexColor("#b45309"), "high": colors.HexColor("#b91c1c")}


def fetch_image_bytes(uri: str) -> Optional[bytes]:
    """Download a photo. Returns None if it cannot be fetched."""
    try:
        with httpx.stream("GET", uri, timeout=settings.visits_api_timeout_s, follow_redirects=True) as r:
            r.raise_for_status()
            return b"".join(r.iter_bytes())
    except httpx.HTTPError as e:
        logger.warning("pdf_photo_fetch_failed", uri=uri, error=str(e))
        return None


def _image_reader(img_bytes: bytes) -> ImageReader:
    pil_im = ImageOps.exif_transpose(PILImage.open(io.BytesIO(img_bytes)))
    if pil_im.mode in ("RGBA", "P", "LA"):
        pil_im = pil_im.convert("RGB")
    img_buf = io.BytesIO()
    pil_im.save(img_buf, format="JPEG", quality=85)
    img_buf.seek(0)
    return ImageReader(img_buf)


def _local_date(value) -> str:
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(pytz.timezone(settings.tz_default)).strftime("%d/%m/%Y")


class _Writer:
    """Top-down text cursor over a canvas, breaking pages as needed."""

    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def ensure(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def text(self, value: str, size: int = 10, bold: bool = False, color=colors.black, indent: float = 0) -> None:
        font = FONT_BOLD if bold else FONT
        leading = size + 3
        max_w = self.width - 2 * MARGIN - indent
        for para in (value or "").replace("\r\n", "\n").split("\n"):
            lines = simpleSplit(para, font, size, max_w) or [""]
            for line in lines:
                self.ensure(leading)
                self.c.setFont(font, size)
                self.c.setFillColor(color)
                self.c.drawString(MARGIN + indent, self.y - size, line)
                self.y -= leading

    def gap(self, h: float = 8) -> None:
        self.y -= h

    def rule(self) -> None:
        self.ensure(10)
        self.c.setStrokeColor(colors.HexColor("#d1d5db"))
        self.c.line(MARGIN, self.y, self.width - MARGIN, self.y)
        self.y -= 10

    def image(self, reader: ImageReader) -> None:
        iw, ih = reader.getSize()
        scale = min(PHOTO_MAX_W / iw, PHOTO_MAX_H / ih, 1.0)
        w, h = iw * scale, ih * scale
        self.ensure(h + 4)
        self.c.drawImage(reader, MARGIN, self.y - h, width=w, height=h)
        self.y -= h + 4


def _draw_photo(w: _Writer, index: int, photo: PdfPhoto, fetch: Callable[[str], Optional[bytes]]) -> None:
    w.ensure(40)
    w.text(f"Photo {index} - {_local_date(photo.timestamp)}", size=11, bold=True)
    if photo.uri:
        img_bytes = fetch(photo.uri)
        if img_bytes:
            try:
                w.image(_image_reader(img_bytes))
            except (OSError, ValueError) as e:
                logger.warning("pdf_photo_decode_failed", photo_id=photo.id, error=str(e))
    if photo.comment:
        w.text(f"Commentaire : {photo.comment}", indent=10)
    a = photo.ai_analysis
    if a:
        w.text(
            f"Niveau de risque : {RISK_LABELS.get(a.risk_level, a.risk_level)} (confiance {a.confidence} %)",
            bold=True,
            color=RISK_COLORS.get(a.risk_level, colors.black),
            indent=10,
        )
        if a.observations:
            w.text("Observations :", bold=True, indent=10)
            for obs in a.observations:
                w.text(f"- {obs}", indent=20)
        if a.recommendations:
            w.text("Recommandations :", bold=True, indent=10)
            for rec in a.recommendations:
                w.text(f"- {rec}", indent=20)
    w.gap()


def build_report_pdf(payload: ReportPdfPayload, fetch: Optional[Callable[[str], Optional[bytes]]] = None) -> bytes:
    """Generate PDF bytes for a report. Photos that cannot be downloaded are listed without an image."""
    fetch = fetch or fetch_image_bytes
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(payload.title)
    w = _Writer(c)

    w.text(payload.title or "Rapport", size=18, bold=True)
    w.gap(4)
    w.text(f"Mission : {payload.mission}")
    w.text(f"Client : {payload.client}")
    w.text(f"Date : {_local_date(payload.date)}")
    if payload.conformity is not None:
        w.text(f"Conformité : {payload.conformity} %", bold=True)
    w.rule()

    if payload.header:
        w.text(payload.header, size=11, bold=True)
        w.gap()
    w.text(payload.content or "Contenu non disponible")
    w.gap()

    validated = [p for p in payload.photos if p.validated]
    if validated:
        w.rule()
        w.text("Photos de la visite", size=14, bold=True)
        w.gap(4)
        for i, photo in enumerate(validated, start=1):
            _draw_photo(w, i, photo, fetch)

    if payload.footer:
        w.rule()
        w.text(payload.footer, size=9, color=colors.HexColor("#4b5563"))

    c.showPage()
    c.save()
    return buf.getvalue()
