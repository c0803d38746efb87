"""Document branding with PyMuPDF: a logo and a contact line on every page."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path

import pymupdf
from PIL import Image, UnidentifiedImageError

from brandrr.core.exceptions import DocumentBrandingError
from brandrr.schemas.job import ContactInfo

logger = logging.getLogger(__name__)

LOGO_WIDTH = 80
LOGO_OFFSET = (20, 20)
CONTACT_OFFSET = (20, 20)
CONTACT_FONT = "helv"
CONTACT_FONT_SIZE = 10
CONTACT_COLOR = (0.2, 0.2, 0.2)
# Latin-1 middle dot; the built-in Helvetica only encodes code points below 256.
CONTACT_SEPARATOR = " · "


@dataclass(slots=True)
class LogoImage:
    data: bytes
    width: int
    height: int

    def scaled_height(self, width: float) -> float:
        return width * self.height / self.width


def format_contact_line(contact: ContactInfo | None) -> str:
    """Join phone, email and website with a separator, skipping blanks."""
    if contact is None:
        return ""
    parts = [value.strip() for value in (contact.phone, contact.email, contact.website) if value and value.strip()]
    return CONTACT_SEPARATOR.join(parts)


def load_logo_png(logo_path: Path) -> LogoImage:
    """Re-encode the logo as PNG so any Pillow-readable format can be embedded."""
    try:
        with Image.open(logo_path) as image:
            image.load()
            converted = image.convert("RGBA")
    except (OSError, UnidentifiedImageError) as exc:
        raise DocumentBrandingError(f"Unsupported logo image: {exc}") from exc

    buffer = io.BytesIO()
    converted.save(buffer, format="PNG")
    width, height = converted.size
    if not width or not height:
        raise DocumentBrandingError("Logo image has no pixels")
    return LogoImage(data=buffer.getvalue(), width=width, height=height)


def brand_pdf(
    source_path: Path,
    output_path: Path,
    *,
    logo_path: Path | None = None,
    contact: ContactInfo | None = None,
) -> int:
    """Stamp every page and save to ``output_path``. Returns the page count."""
    logo = load_logo_png(logo_path) if logo_path else None
    contact_line = format_contact_line(contact)

    try:
        document = pymupdf.open(str(source_path), filetype="pdf")
    except (pymupdf.FileDataError, RuntimeError, ValueError) as exc:
        raise DocumentBrandingError(f"Could not open PDF: {exc}") from exc

    try:
        for page in document:
            height = page.rect.height
            if logo is not None:
                left, top = LOGO_OFFSET
                rect = pymupdf.Rect(left, top, left + LOGO_WIDTH, top + logo.scaled_height(LOGO_WIDTH))
                page.insert_image(rect, stream=logo.data, keep_proportion=True)
            if contact_line:
                left, bottom = CONTACT_OFFSET
                page.insert_text(
                    pymupdf.Point(left, height - bottom),
                    contact_line,
                    fontname=CONTACT_FONT,
                    fontsize=CONTACT_FONT_SIZE,
                    color=CONTACT_COLOR,
                )
        page_count = document.page_count
        document.save(str(output_path), garbage=3, deflate=True)
    except (RuntimeError, ValueError) as exc:
        raise DocumentBrandingError(f"Could not brand PDF: {exc}") from exc
    finally:
        document.close()

    logger.info(
        "Branded PDF document",
        extra={"page_count": page_count, "logo": logo is not None, "contact_line": bool(contact_line)},
    )
    return page_count
