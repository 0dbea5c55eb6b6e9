import logging
import zipfile
from pathlib import Path
from typing import List, Optional

from pdfminer.high_level import extract_text as pdf_extract_text
from pdfminer.pdfparser import PDFSyntaxError
from PIL import Image, UnidentifiedImageError
import pytesseract
import docx
from docx.opc.exceptions import PackageNotFoundError

from .errors import DocumentError
from .models import CaseView, SideView

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = [".png", ".jpg", ".jpeg", ".tiff", ".bmp"]
KNOWN_SUFFIXES = [".pdf", ".docx", ".txt"] + IMAGE_SUFFIXES
DOCUMENT_EXCERPT_CHARS = 4000

CONTENT_TYPE_SUFFIXES = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/tiff": ".tiff",
    "image/bmp": ".bmp",
}


# -------------------------------
# Utility: Extract text from files
# -------------------------------
def extract_text_from_file(path: Path, content_type: Optional[str] = None) -> str:
    """Extract plain text from a PDF, Word, image or text file.

    The file suffix decides the parser; ``content_type`` is used when the
    suffix is missing or unknown.
    """
    suf = path.suffix.lower()
    if suf not in KNOWN_SUFFIXES and content_type:
        suf = CONTENT_TYPE_SUFFIXES.get(content_type.split(";")[0].strip().lower(), suf)

    logger.info(f"Extracting text from {path.name} ({suf or 'no suffix'})")
    try:
        if suf == ".pdf":
            return pdf_extract_text(str(path))
        elif suf == ".docx":
            document = docx.Document(str(path))
            return "\n".join(p.text for p in document.paragraphs)
        elif suf in IMAGE_SUFFIXES:
            with Image.open(path) as img:
                return pytesseract.image_to_string(img)
        elif suf == ".txt":
            return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError, PDFSyntaxError, UnidentifiedImageError,
            pytesseract.TesseractError, PackageNotFoundError, zipfile.BadZipFile, ValueError) as e:
        logger.error(f"Failed to extract text from {path.name}: {e}")
        raise DocumentError(f"Failed to extract text from {path.name}") from e

    raise DocumentError(f"Unsupported file type: {path.name}. Only PDF, Word, image and text files are allowed.")


# -------------------------------
# Build context for prompts
# -------------------------------
def _numbered(items: List[str], empty: str) -> str:
    if not items:
        return empty
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def _side_block(title: str, side: SideView) -> str:
    documents = [
        doc[:DOCUMENT_EXCERPT_CHARS] + (" [...]" if len(doc) > DOCUMENT_EXCERPT_CHARS else "")
        for doc in side.documents
    ]
    return (
        f"{title}:\n"
        f"Summary: {side.summary}\n\n"
        f"Documents Submitted:\n{_numbered(documents, 'None')}\n\n"
        f"Evidence:\n{_numbered(side.evidence, 'None')}\n"
    )


def format_case_context(case: CaseView) -> str:
    return (
        f"CASE DETAILS:\n"
        f"Case Type: {case.case_type}\n"
        f"Jurisdiction: {case.jurisdiction}\n\n"
        + _side_block("PLAINTIFF/PROSECUTION (SIDE A)", case.side_a)
        + "\n---\n\n"
        + _side_block("DEFENDANT/DEFENSE (SIDE B)", case.side_b)
    )
