"""
Statement input normalization.
Turns an uploaded CSV/TXT/PDF file (or a literal override string) into the
plain text handed to the classifier.
"""
import io
from typing import List, Optional

import pdfplumber
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from core.exceptions import FileProcessingError, UnsupportedFormatError
from core.logger import setup_logger

logger = setup_logger(__name__)

TEXT_CONTENT_TYPES = {"text/csv", "text/plain"}
PDF_CONTENT_TYPE = "application/pdf"

# Demo statement offered by the upload screen ("test with sample data")
SAMPLE_STATEMENT = """
DATA,DESCRIÇÃO,VALOR
2024-05-01,NETFLIX.COM, -55.90
2024-05-02,UBER DO BRASIL, -24.90
2024-05-03,SPOTIFY STUDENT, -11.90
2024-05-05,AMAZON PRIME, -19.90
2024-05-10,SMART FIT ACADEMIA, -129.90
2024-05-12,IFOOOD BR, -89.00
2024-05-15,ADOBE CREATIVE CLOUD, -224.00
2024-05-20,APPLE SERVICES, -14.90
2024-05-22,CHATGPT SUBSCRIPTION, -100.00
2024-05-25,PADARIA DO ZÉ, -12.50
2024-05-28,POSTO IPIRANGA, -150.00
"""


def base_content_type(content_type: Optional[str]) -> str:
    """
    Strip MIME parameters and normalize case.

    Args:
        content_type: Raw Content-Type value (e.g. "text/csv; charset=utf-8")

    Returns:
        Bare lowercase MIME type, empty string if missing
    """
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def decode_text_bytes(raw_bytes: bytes) -> str:
    """Read CSV/TXT bytes verbatim as UTF-8 (BOM dropped)."""
    return raw_bytes.decode("utf-8-sig", errors="replace")


def _pages_with_pdfplumber(raw_bytes: bytes) -> List[str]:
    pages_text: List[str] = []
    with pdfplumber.open(io.BytesIO(raw_bytes)) as pdf:
        for page in pdf.pages:
            runs = [word["text"] for word in page.extract_words()]
            pages_text.append(" ".join(runs))
    return pages_text


def _pages_with_pypdf(raw_bytes: bytes) -> List[str]:
    reader = PdfReader(io.BytesIO(raw_bytes))
    pages_text: List[str] = []
    for page in reader.pages:
        text = page.extract_text() or ""
        # collapse the line layout into space-separated runs
        pages_text.append(" ".join(text.split()))
    return pages_text


def extract_pdf_text(raw_bytes: bytes) -> str:
    """
    Extract visible text from a PDF, page by page in order.

    Text runs of a page are joined by single spaces and every page ends
    with a newline. No layout or column reconstruction is attempted.

    Args:
        raw_bytes: PDF file content

    Returns:
        Concatenated page text

    Raises:
        FileProcessingError: If neither extractor can read the document
    """
    try:
        pages_text = _pages_with_pdfplumber(raw_bytes)
    except Exception as e:
        logger.warning(f"pdfplumber failed ({type(e).__name__}), falling back to pypdf")
        try:
            pages_text = _pages_with_pypdf(raw_bytes)
        except (PdfReadError, ValueError, OSError) as fallback_error:
            raise FileProcessingError(
                "Could not read PDF file",
                details={"error": str(fallback_error)}
            )

    logger.info(f"Extracted text from {len(pages_text)} PDF page(s)")
    return "".join(f"{text}\n" for text in pages_text).strip()


def extract_statement_text(
    raw_bytes: Optional[bytes],
    content_type: Optional[str],
    override_text: Optional[str] = None,
) -> str:
    """
    Produce the statement text regardless of source format.

    Args:
        raw_bytes: Uploaded file content (ignored when override_text is set)
        content_type: Declared MIME type of the upload
        override_text: Literal statement text (sample/demo data)

    Returns:
        Statement text

    Raises:
        UnsupportedFormatError: If the MIME type is not CSV, plain text or PDF
    """
    if override_text is not None:
        return override_text

    mime = base_content_type(content_type)
    if mime in TEXT_CONTENT_TYPES:
        return decode_text_bytes(raw_bytes or b"")
    if mime == PDF_CONTENT_TYPE:
        return extract_pdf_text(raw_bytes or b"")

    raise UnsupportedFormatError(
        f"Unsupported file type: {mime or 'unknown'}. Only CSV, TXT and PDF are supported.",
        details={"content_type": content_type}
    )


def truncate_statement(text: str, max_chars: int) -> str:
    """
    Keep only the prefix of the statement that fits the request limit.

    Args:
        text: Statement text
        max_chars: Maximum characters sent to the classifier

    Returns:
        Truncated text
    """
    if len(text) <= max_chars:
        return text
    logger.info(f"Statement truncated from {len(text)} to {max_chars} characters")
    return text[:max_chars]


def is_blank_statement(text: Optional[str]) -> bool:
    """True when there is nothing worth sending to the classifier."""
    return not text or not text.strip()
