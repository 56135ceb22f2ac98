import itertools
import math
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from docchat import config
from docchat.main import app
from docchat.store import get_store


class InMemoryStore:
    """Stands in for ChunkStore; same methods, plain lists and dicts."""

    def __init__(self):
        self.documents = {}
        self.chunks = []
        self.fail_search = False
        self.insert_calls = []
        self._clock = itertools.count()
        self._epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _now(self):
        return self._epoch + timedelta(seconds=next(self._clock))

    # documents

    def create_document(self, name, size, type, file_data):
        doc = {
            "id": str(uuid.uuid4()),
            "name": name,
            "size": size,
            "type": type,
            "status": "processing",
            "document_id": None,
            "error": None,
            "file_data": file_data,
            "uploaded_at": self._now(),
        }
        self.documents[doc["id"]] = doc
        return dict(doc)

    def get_document(self, doc_id):
        doc = self.documents.get(doc_id)
        return dict(doc) if doc else None

    def list_documents(self, limit=None):
        docs = sorted(self.documents.values(), key=lambda d: d["uploaded_at"], reverse=True)
        docs = [{k: v for k, v in d.items() if k != "file_data"} for d in docs]
        return docs[:limit] if limit is not None else docs

    def update_document(self, doc_id, **fields):
        self.documents[doc_id].update(fields)

    def delete_document(self, document):
        if document.get("document_id"):
            self.delete_chunks(document["document_id"])
        self.documents.pop(document["id"], None)

    def has_documents(self):
        return bool(self.documents)

    # chunks

    def insert_chunks(self, chunks):
        self.insert_calls.append(len(chunks))
        for c in chunks:
            self.chunks.append({**c, "created_at": self._now()})

    def delete_chunks(self, document_key):
        before = len(self.chunks)
        self.chunks = [c for c in self.chunks if c["metadata"]["document_id"] != document_key]
        return before - len(self.chunks)

    def chunks_for(self, document_key):
        return [c for c in self.chunks if c["metadata"]["document_id"] == document_key]

    def match_chunks(self, embedding, threshold, count):
        if self.fail_search:
            raise SQLAlchemyError("match_chunks unavailable")
        scored = []
        for c in self.chunks:
            if c["embedding"] is None:
                continue
            sim = _cosine(embedding, c["embedding"])
            if sim > threshold:
                scored.append((sim, c))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            {"id": c["id"], "content": c["content"], "metadata": c["metadata"], "similarity": sim}
            for sim, c in scored[:count]
        ]

    def recent_unembedded_chunks(self, document_keys, limit):
        rows = [c for c in self.chunks if c["embedding"] is None]
        if document_keys is not None:
            rows = [c for c in rows if c["metadata"]["document_id"] in document_keys]
        rows.sort(key=lambda c: c["created_at"], reverse=True)
        return [{"id": c["id"], "content": c["content"], "metadata": c["metadata"]} for c in rows[:limit]]

    def recent_chunks(self, limit):
        rows = sorted(self.chunks, key=lambda c: c["created_at"], reverse=True)[:limit]
        return [
            {
                "id": c["id"],
                "content_length": len(c["content"]),
                "has_embedding": c["embedding"] is not None,
                "metadata": c["metadata"],
                "created_at": c["created_at"],
            }
            for c in rows
        ]

    def ping(self):
        pass

    # helpers for tests

    def add_chunk(self, document_key, content, embedding=None, document_name="doc.txt", index=0):
        self.insert_chunks([{
            "id": str(uuid.uuid4()),
            "content": content,
            "metadata": {
                "document_id": document_key,
                "document_name": document_name,
                "chunk_index": index,
                "created_at": "2024-01-01T00:00:00+00:00",
            },
            "embedding": embedding,
        }])
        return self.chunks[-1]


def _cosine(a, b):
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def quota_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.RateLimitError(
        "You exceeded your current quota, please check your plan and billing details.",
        response=httpx.Response(429, request=request),
        body={"code": "insufficient_quota", "message": "You exceeded your current quota"},
    )


def unit_vector(index, dim=config.EMBEDDING_DIM):
    vec = [0.0] * dim
    vec[index] = 1.0
    return vec


@pytest.fixture(autouse=True)
def fast_processing(monkeypatch):
    monkeypatch.setattr(config, "EMBED_BATCH_PAUSE_SECONDS", 0)
    monkeypatch.setattr(config, "PERSIST_BATCH_PAUSE_SECONDS", 0)
    monkeypatch.setattr(config, "PROCESSING_MODE", "simple")


@pytest.fixture(autouse=True)
def no_openai_key(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)


@pytest.fixture
def openai_key(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")


@pytest.fixture
def fake_openai(monkeypatch, openai_key):
    """An OpenAI client double wired into every module that calls the API."""
    client = MagicMock()
    client.embeddings.create.return_value = SimpleNamespace(
        data=[SimpleNamespace(embedding=unit_vector(0))]
    )
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="Grounded answer."))]
    )
    for module in ("docchat.embedding", "docchat.services.rag_service", "docchat.routes.system"):
        monkeypatch.setattr(f"{module}.get_client", lambda: client)
    return client


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def text_file():
    """About 2 KB of plain text."""
    sentence = "The warranty covers manufacturing defects for two years from purchase. "
    return (sentence * 30).encode("utf-8")
