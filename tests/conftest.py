"""
Shared test configuration.
Environment is prepared before any application module reads settings.
"""
import os
import tempfile

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="quantoda-tests-")

os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["DATABASE_PATH"] = os.path.join(_TMP_DIR, "quantoda-test.db")
os.environ["STORAGE_PATH"] = os.path.join(_TMP_DIR, "files")
os.environ.pop("ABACATEPAY_API_KEY", None)

from core.config import reset_settings  # noqa: E402
from core.schema import SubscriptionItem  # noqa: E402
from llm.client import reset_client  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_singletons():
    """Rebuild settings and the LLM client from the environment for every test."""
    reset_settings()
    reset_client()
    yield
    reset_settings()
    reset_client()


@pytest.fixture
def make_item():
    """Factory for subscription items with sensible defaults."""
    def _make(**overrides):
        data = {
            "name": "Netflix",
            "amount": 55.90,
            "frequency": "monthly",
            "category": "Streaming",
            "confidence": 0.95,
        }
        data.update(overrides)
        return SubscriptionItem(**data)
    return _make


def build_pdf(page_texts):
    """Assemble a minimal text PDF with one Helvetica line per page."""
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
    ]
    page_ids = [4 + 2 * i for i in range(len(page_texts))]
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {len(page_texts)} >>".encode())
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")

    for pid, text in zip(page_ids, page_texts):
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>".encode()
        )
        stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode()
        objects.append(b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_pos = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_pos}\n%%EOF\n"
    ).encode()
    return bytes(out)


@pytest.fixture
def pdf_builder():
    return build_pdf
