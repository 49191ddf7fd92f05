"""
services/source_extractor.py

업로드 파일 → 퀴즈 생성용 본문 텍스트.
PDF는 PyMuPDF로 페이지별 텍스트를 추출하고, 그 외는 UTF-8 텍스트로 읽는다.
"""

import logging

import fitz  # PyMuPDF

from config import MAX_PDF_PAGES, MAX_UPLOAD_SIZE
from shama_quiz.errors import DraftValidationError

logger = logging.getLogger(__name__)

_PDF_MAGIC = b"%PDF"


def extract_text(file_bytes: bytes, filename: str = "") -> str:
    """파일 바이트에서 본문 텍스트를 추출한다. 비어 있으면 DraftValidationError."""
    if not file_bytes:
        raise DraftValidationError("파일이 비어 있습니다.")
    if len(file_bytes) > MAX_UPLOAD_SIZE:
        raise DraftValidationError(f"파일이 너무 큽니다 (최대 {MAX_UPLOAD_SIZE // (1024 * 1024)}MB).")

    if file_bytes.startswith(_PDF_MAGIC) or filename.lower().endswith(".pdf"):
        text = _extract_pdf_text(file_bytes)
    else:
        try:
            text = file_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DraftValidationError("지원하지 않는 파일 형식입니다 (PDF 또는 UTF-8 텍스트).") from e

    text = text.strip()
    if not text:
        raise DraftValidationError("파일에서 텍스트를 추출하지 못했습니다.")
    return text


def _extract_pdf_text(file_bytes: bytes) -> str:
    doc = None
    try:
        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as e:
            logger.error(f"PDF 열기 실패 - {e}")
            raise DraftValidationError("PDF 파일을 열 수 없습니다.") from e

        if len(doc) > MAX_PDF_PAGES:
            raise DraftValidationError(
                f"PDF 페이지가 너무 많습니다 ({len(doc)}페이지). 최대 {MAX_PDF_PAGES}페이지까지 지원합니다."
            )

        pages = [doc.load_page(i).get_text() for i in range(len(doc))]
        logger.info(f"PDF 텍스트 추출: {len(doc)}페이지, {sum(len(p) for p in pages)}자")
        return "\n".join(pages)
    finally:
        if doc is not None:
            doc.close()
