# =============================================================================
# Text Extractor — Docling PDF Parsing with Decoding Fallback
# =============================================================================
#
# Turns a stored CV or project report into raw text for chunking and scoring.
#
# EXTRACTION ORDER:
#   1. Read the file bytes. A missing/unreadable file is fatal for the job
#      (MissingDocumentFileError).
#   2. Files carrying the %PDF signature are converted with Docling and
#      exported as markdown text.
#   3. On parse failure or empty output, decode the raw bytes
#      (UTF-8, then Latin-1).
#   4. If that is empty too, return a sentinel string. Extraction is
#      best-effort: unreadable content never fails the pipeline.
#
# Uploads are stored without extensions, so the format is detected from the
# file signature rather than the filename.
# =============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from cv_evaluator.exceptions import MissingDocumentFileError

if TYPE_CHECKING:
    from docling.document_converter import DocumentConverter

logger = logging.getLogger(__name__)

UNEXTRACTABLE_TEXT = "[unable to extract text from document]"

_PDF_SIGNATURE = b"%PDF"


# ---------------------------------------------------------------------------
# Docling Converter — Lazy Singleton
# ---------------------------------------------------------------------------
# Initialization loads layout models into memory (a few seconds on first
# use), so one converter is reused across documents. Docling is imported
# here rather than at module level so plain-text extraction never pays
# that cost.
# ---------------------------------------------------------------------------

_converter: DocumentConverter | None = None


def _get_converter() -> DocumentConverter:
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is None:
        from docling.datamodel.base_models import InputFormat
        from docling.datamodel.pipeline_options import PdfPipelineOptions
        from docling.document_converter import DocumentConverter, PdfFormatOption

        logger.info(
            "Initializing Docling DocumentConverter "
            "(first use, may take a few seconds)..."
        )

        # CVs and reports are text-first; table structure is still useful
        # for skills matrices. OCR covers scanned CVs.
        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_table_structure = True
        pipeline_options.do_ocr = True

        _converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(
                    pipeline_options=pipeline_options,
                ),
            }
        )
        logger.info("Docling DocumentConverter initialized")
    return _converter


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_text(file_path: str) -> str:
    """
    Extract raw text from a stored document.

    Args:
        file_path: Path of the uploaded file on disk.

    Returns:
        Non-empty text. Falls back to UNEXTRACTABLE_TEXT when neither PDF
        parsing nor byte decoding yields anything.

    Raises:
        MissingDocumentFileError: If the file does not exist or can't be read.
    """
    path = Path(file_path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise MissingDocumentFileError(file_path) from exc

    if data.startswith(_PDF_SIGNATURE):
        text = _parse_pdf(path)
        if text.strip():
            logger.info("Extracted %d chars from PDF '%s'", len(text), path.name)
            return text
        logger.warning(
            "PDF parsing produced no text for '%s', falling back to decoding",
            path.name,
        )

    text = _decode_bytes(data)
    if text.strip():
        logger.info("Decoded %d chars of plain text from '%s'", len(text), path.name)
        return text

    logger.warning("No text could be extracted from '%s'", path.name)
    return UNEXTRACTABLE_TEXT


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _parse_pdf(path: Path) -> str:
    """Convert a PDF with Docling; returns "" on any conversion failure."""
    try:
        result = _get_converter().convert(str(path))
        return result.document.export_to_markdown()
    except Exception as exc:
        # Docling raises a mix of its own and pdf backend errors for
        # corrupt files; every one of them degrades to byte decoding.
        logger.warning("Docling failed to parse '%s': %s", path.name, exc)
        return ""


def _decode_bytes(data: bytes) -> str:
    """Decode raw bytes as UTF-8, falling back to Latin-1."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    return text.replace("\x00", "").strip()
