"""Shared fixtures: temporary database, fake clients, sample PDFs."""
import hashlib
import re
from typing import List, Optional

import pytest

from docqa import db
from docqa.errors import EmbeddingError, GenerationError
from docqa.rag.store_faiss import FAISSVectorBackend
from docqa.rag.vector_store import VectorStoreClient

EMBEDDING_DIM = 64


class HashEmbedder:
    """Deterministic bag-of-words embedder: identical texts embed identically."""

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.calls: List[str] = []

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * EMBEDDING_DIM
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % EMBEDDING_DIM
            vector[bucket] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    async def embed(self, texts: List[str]) -> List[List[float]]:
        vectors = []
        for text in texts:
            self.calls.append(text)
            if self.fail_on and self.fail_on in text:
                raise EmbeddingError(f"refused to embed: {text[:20]}")
            vectors.append(self._vector(text))
        return vectors

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]


class FakeLLM:
    """Generation collaborator that records its calls."""

    def __init__(self, answer: str = "Generated answer", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.calls = []
        self.title_calls = []

    async def generate_response(self, question, context, chat_history=None):
        self.calls.append(
            {"question": question, "context": context, "history": list(chat_history or [])}
        )
        if self.fail:
            raise GenerationError("model unavailable")
        return self.answer

    async def generate_title(self, first_message):
        self.title_calls.append(first_message)
        return "Test Title"


def build_pdf(text: str, title: Optional[str] = None) -> bytes:
    """Build a minimal single-page PDF with one line of Helvetica text."""
    content = f"BT /F1 24 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    if title:
        objects.append(b"<< /Title (" + title.encode("latin-1") + b") >>")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset

    trailer = b"<< /Size %d /Root 1 0 R" % (len(objects) + 1)
    if title:
        trailer += b" /Info %d 0 R" % len(objects)
    out += b"trailer\n" + trailer + b" >>\nstartxref\n%d\n%%%%EOF\n" % xref_offset
    return bytes(out)


@pytest.fixture(autouse=True)
def temp_database(tmp_path, monkeypatch):
    """Point the SQLite helpers at a throwaway database."""
    path = tmp_path / "test.sqlite"
    monkeypatch.setattr(db, "DB_PATH", path)
    return path


@pytest.fixture
def embedder():
    return HashEmbedder()


@pytest.fixture
def faiss_backend(tmp_path):
    return FAISSVectorBackend(index_dir=tmp_path / "vectors")


@pytest.fixture
def vector_store(faiss_backend, embedder):
    return VectorStoreClient(backend=faiss_backend, embedder=embedder, batch_size=100)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def sample_pdf():
    return build_pdf("Hello PDF World. This is a test document.", title="Sample Title")
