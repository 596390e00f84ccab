"""Extracts text from uploaded recipe files (.pdf, .docx, .txt)."""

import io
import logging
import zipfile

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".txt")


class UnsupportedFileError(ValueError):
    """Raised for files that are not .pdf, .docx or .txt, or cannot be read."""
    pass


def extract_text_from_pdf(data: bytes) -> str:
    """Joins the text of all PDF pages, one page per line."""
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as e:
        raise UnsupportedFileError(f"Could not read PDF: {e}") from e
    return "\n".join(pages)


def extract_text_from_docx(data: bytes) -> str:
    try:
        document = Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise UnsupportedFileError(f"Could not read DOCX: {e}") from e
    return "\n".join(p.text for p in document.paragraphs)


def extract_text_from_file(filename: str, data: bytes) -> str:
    """
    Extracts text from a file based on its extension.

    Raises:
        UnsupportedFileError: For other file types and unreadable files
    """
    name = (filename or "").lower()

    if name.endswith(".pdf"):
        text = extract_text_from_pdf(data)
    elif name.endswith(".docx"):
        text = extract_text_from_docx(data)
    elif name.endswith(".txt"):
        text = data.decode("utf-8", errors="replace")
    else:
        raise UnsupportedFileError(
            f"Unsupported file type: {name}. Please use .txt, .pdf, or .docx files."
        )

    logger.info(f"Extracted {len(text)} characters from {name}")
    return text
