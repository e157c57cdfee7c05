"""
PDF signing engine

Stamps signature images and a three-line attestation onto PDF pages, then
appends the identity document from the envelope's latest face verification
as a final page. Each signature is rendered with reportlab onto a transparent
overlay that PyPDF2 merges onto the target page.

Failure policy: a PDF that cannot be loaded aborts the request
(DocumentUnreadable); a bad signature entry is skipped and logged; the
identity page and placeholder bookkeeping are best-effort.
"""
import base64
import binascii
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader, PdfWriter
from pydantic import ValidationError as PydanticValidationError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from modules.common.errors import DocumentUnreadable
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.signing.schemas.signing_schemas import SignatureEntry
from modules.storage.services.blob_store import EncryptedBlobStore

logger = logging.getLogger(__name__)

DEFAULT_WIDTH_RATIO = 0.2
DEFAULT_HEIGHT_RATIO = 0.076
ATTESTATION_FONT = "Helvetica"
ATTESTATION_FONT_SIZE = 8
ATTESTATION_LINE_HEIGHT = 10
IDENTITY_PAGE_TITLE = "Identity Verification Document"
IDENTITY_IMAGE_RATIO = 0.8


class SignatureEntryError(Exception):
    """A single signature entry that cannot be applied"""


@dataclass(frozen=True)
class Placement:
    x: float
    y: float
    width: float
    height: float


@dataclass
class SigningReport:
    pdf_bytes: bytes
    applied: int = 0
    skipped: List[dict] = field(default_factory=list)
    identity_page_appended: bool = False


def compute_placement(
    page_width: float,
    page_height: float,
    x: float,
    y: float,
    width: Optional[float] = None,
    height: Optional[float] = None,
    origin_x: float = 0.0,
    origin_y: float = 0.0,
) -> Placement:
    """
    Converts top-left normalized coordinates into PDF user space
    (bottom-left origin): absY = pageHeight - y * pageHeight - heightAbs
    """
    abs_width = (width if width is not None else DEFAULT_WIDTH_RATIO) * page_width
    abs_height = (height if height is not None else DEFAULT_HEIGHT_RATIO) * page_height
    abs_x = origin_x + x * page_width
    abs_y = origin_y + page_height - (y * page_height) - abs_height
    return Placement(abs_x, abs_y, abs_width, abs_height)


def format_timestamp(timestamp: Optional[datetime]) -> str:
    if timestamp is None:
        timestamp = datetime.utcnow()
    elif timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    return timestamp.strftime("%Y-%m-%d %H:%M:%S UTC")


def decode_data_url(data_url: str) -> bytes:
    """Accepts data:<mime>;base64,<payload> or a bare base64 payload"""
    payload = data_url.split(",", 1)[1] if data_url.startswith("data:") else data_url
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise SignatureEntryError(f"signature image is not valid base64: {e}")


def load_signature_image(raw: bytes) -> Image.Image:
    """
    Decodes as PNG whatever mime was declared; if that fails, a second attempt
    lets Pillow detect the format.
    """
    try:
        image = Image.open(io.BytesIO(raw), formats=["PNG"])
        image.load()
        return image
    except (UnidentifiedImageError, OSError, ValueError):
        logger.debug("PNG decoding failed, retrying with format detection")
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
        return image
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise SignatureEntryError(f"signature image could not be decoded: {e}")


def _overlay_page(page_width: float, page_height: float, draw) -> Any:
    buffer = io.BytesIO()
    overlay = canvas.Canvas(buffer, pagesize=(page_width, page_height))
    draw(overlay)
    overlay.showPage()
    overlay.save()
    buffer.seek(0)
    return PdfReader(buffer).pages[0]


class PdfSigningEngine:

    def __init__(
        self,
        repository: Optional[EnvelopeRepository] = None,
        blob_store: Optional[EncryptedBlobStore] = None,
    ):
        self.repository = repository
        self.blob_store = blob_store

    @staticmethod
    def load(pdf_bytes: bytes) -> PdfReader:
        """Lenient load; encrypted PDFs are opened with the empty user password"""
        try:
            reader = PdfReader(io.BytesIO(pdf_bytes), strict=False)
            if reader.is_encrypted and not reader.decrypt(""):
                raise DocumentUnreadable("PDF is password protected")
            _ = len(reader.pages)
            return reader
        except DocumentUnreadable:
            raise
        except Exception as e:
            logger.warning(f"PDF could not be loaded: {e}")
            raise DocumentUnreadable("The PDF document could not be read")

    def sign_document(
        self,
        pdf_bytes: bytes,
        signatures: List[Union[SignatureEntry, dict]],
        envelope_id: Optional[str] = None,
    ) -> bytes:
        return self.sign(pdf_bytes, signatures, envelope_id).pdf_bytes

    def sign(
        self,
        pdf_bytes: bytes,
        signatures: List[Union[SignatureEntry, dict]],
        envelope_id: Optional[str] = None,
    ) -> SigningReport:
        reader = self.load(pdf_bytes)
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page)

        report = SigningReport(pdf_bytes=b"")
        for index, raw_entry in enumerate(signatures):
            try:
                entry = raw_entry if isinstance(raw_entry, SignatureEntry) else SignatureEntry.model_validate(raw_entry)
                self._apply_signature(writer, entry)
            except (SignatureEntryError, PydanticValidationError) as e:
                logger.warning(f"Skipping signature #{index}: {e}")
                report.skipped.append({"index": index, "reason": str(e)})
                continue

            report.applied += 1
            if entry.placeholder_id is not None and envelope_id:
                self._mark_placeholder(envelope_id, entry.placeholder_id)

        if envelope_id:
            report.identity_page_appended = self._append_identity_page(writer, envelope_id)

        output = io.BytesIO()
        writer.write(output)
        report.pdf_bytes = output.getvalue()
        return report

    def _apply_signature(self, writer: PdfWriter, entry: SignatureEntry) -> Placement:
        page_index = entry.page - 1
        if page_index >= len(writer.pages):
            raise SignatureEntryError(f"page {entry.page} does not exist (document has {len(writer.pages)})")
        page = writer.pages[page_index]

        box = page.mediabox
        page_width, page_height = float(box.width), float(box.height)
        placement = compute_placement(
            page_width, page_height, entry.x, entry.y, entry.width, entry.height,
            origin_x=float(box.left), origin_y=float(box.bottom),
        )
        image = load_signature_image(decode_data_url(entry.image_data_url))
        lines = [
            f"Signed by: {entry.name}",
            f"IP Address: {entry.ip_address}",
            f"Date: {format_timestamp(entry.timestamp)}",
        ]

        def draw(overlay):
            overlay.drawImage(
                ImageReader(image), placement.x, placement.y,
                width=placement.width, height=placement.height, mask="auto",
            )
            overlay.setFont(ATTESTATION_FONT, ATTESTATION_FONT_SIZE)
            for offset, line in enumerate(lines, start=1):
                overlay.drawString(placement.x, placement.y - offset * ATTESTATION_LINE_HEIGHT, line)

        page.merge_page(_overlay_page(page_width, page_height, draw))
        return placement

    def _mark_placeholder(self, envelope_id: str, placeholder_id: int) -> None:
        if self.repository is None:
            return
        try:
            if not self.repository.mark_placeholder_signed(envelope_id, placeholder_id):
                logger.warning(f"Placeholder {placeholder_id} of envelope {envelope_id} unknown or already signed")
        except Exception:
            logger.exception(f"Could not mark placeholder {placeholder_id} of envelope {envelope_id} as signed")
            self.repository.db.rollback()

    def _append_identity_page(self, writer: PdfWriter, envelope_id: str) -> bool:
        if self.repository is None or self.blob_store is None:
            return False
        try:
            attempt = self.repository.latest_face_attempt(envelope_id)
            if attempt is None:
                return False
            image_bytes = self.blob_store.retrieve(attempt.document_url, attempt.document_iv, attempt.document_auth_tag)
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except Exception:
            logger.exception(f"Identity document for envelope {envelope_id} unavailable, page not appended")
            return False

        last_box = writer.pages[-1].mediabox
        page_width, page_height = float(last_box.width), float(last_box.height)
        writer.add_page(self.render_identity_page(image, page_width, page_height))
        return True

    @staticmethod
    def render_identity_page(image: Image.Image, page_width: float, page_height: float):
        """Titled page with the image scaled into 80% of the page, aspect kept, centered"""
        scale = min(
            page_width * IDENTITY_IMAGE_RATIO / image.width,
            page_height * IDENTITY_IMAGE_RATIO / image.height,
        )
        draw_width, draw_height = image.width * scale, image.height * scale
        x = (page_width - draw_width) / 2
        y = (page_height - draw_height) / 2

        def draw(page):
            page.setFont("Helvetica-Bold", 16)
            page.drawCentredString(page_width / 2, page_height - 40, IDENTITY_PAGE_TITLE)
            page.drawImage(ImageReader(image), x, y, width=draw_width, height=draw_height, mask="auto")

        return _overlay_page(page_width, page_height, draw)
