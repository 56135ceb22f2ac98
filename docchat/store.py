"""
Persistence for documents and their chunks.
All SQL lives here; services only see plain dicts.
"""
import json
import uuid
from typing import Dict, List, Optional, Sequence

from pgvector.sqlalchemy import Vector
from sqlalchemy import bindparam, text as sa_text
from sqlalchemy.engine import Engine

from .config import EMBEDDING_DIM
from .db import engine as default_engine
from .logging_config import logger

# Columns returned for document listings (the original bytes stay server-side)
_DOCUMENT_COLUMNS = "id, name, size, type, status, document_id, error, uploaded_at"


class ChunkStore:
    """
    Document table plus a chunk table searchable by embedding similarity
    and by metadata fields.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    # ==================== Documents ====================

    def create_document(self, name: str, size: int, type: str, file_data: bytes) -> Dict:
        with self.engine.begin() as conn:
            row = conn.execute(
                sa_text(f"""
                    INSERT INTO documents(id, name, size, type, status, file_data)
                    VALUES(:id, :name, :size, :type, 'processing', :data)
                    RETURNING {_DOCUMENT_COLUMNS}, file_data
                """),
                {"id": str(uuid.uuid4()), "name": name, "size": size, "type": type, "data": file_data},
            ).mappings().one()
        return _document(row)

    def get_document(self, doc_id: str) -> Optional[Dict]:
        with self.engine.begin() as conn:
            row = conn.execute(
                sa_text(f"SELECT {_DOCUMENT_COLUMNS}, file_data FROM documents WHERE id = :id"),
                {"id": doc_id},
            ).mappings().first()
        return _document(row) if row else None

    def list_documents(self, limit: Optional[int] = None) -> List[Dict]:
        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY uploaded_at DESC"
        params = {}
        if limit is not None:
            sql += " LIMIT :limit"
            params["limit"] = limit
        with self.engine.begin() as conn:
            rows = conn.execute(sa_text(sql), params).mappings().all()
        return [dict(r) for r in rows]

    def update_document(self, doc_id: str, **fields) -> None:
        if not fields:
            return
        assignments = ", ".join(f"{name} = :{name}" for name in fields)
        with self.engine.begin() as conn:
            conn.execute(
                sa_text(f"UPDATE documents SET {assignments} WHERE id = :id"),
                {**fields, "id": doc_id},
            )

    def delete_document(self, document: Dict) -> None:
        """Delete a document row and every chunk under its correlation key."""
        with self.engine.begin() as conn:
            if document.get("document_id"):
                conn.execute(
                    sa_text("DELETE FROM document_chunks WHERE metadata->>'document_id' = :key"),
                    {"key": document["document_id"]},
                )
            conn.execute(sa_text("DELETE FROM documents WHERE id = :id"), {"id": document["id"]})

    def has_documents(self) -> bool:
        with self.engine.begin() as conn:
            return conn.execute(sa_text("SELECT COUNT(*) FROM documents")).scalar() > 0

    # ==================== Chunks ====================

    def insert_chunks(self, chunks: Sequence[Dict]) -> None:
        if not chunks:
            return
        with self.engine.begin() as conn:
            conn.execute(
                sa_text("""
                    INSERT INTO document_chunks(id, content, metadata, embedding)
                    VALUES(:id, :content, CAST(:metadata AS jsonb), :embedding)
                """).bindparams(bindparam("embedding", type_=Vector(EMBEDDING_DIM))),
                [
                    {
                        "id": c["id"],
                        "content": c["content"],
                        "metadata": json.dumps(c["metadata"]),
                        "embedding": c.get("embedding"),
                    }
                    for c in chunks
                ],
            )

    def delete_chunks(self, document_key: str) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                sa_text("DELETE FROM document_chunks WHERE metadata->>'document_id' = :key"),
                {"key": document_key},
            )
        logger.info("Deleted chunks", document_key=document_key, count=result.rowcount)
        return result.rowcount

    def match_chunks(self, embedding: List[float], threshold: float, count: int) -> List[Dict]:
        """
        Cosine-similarity search over embedded chunks.
        Returns at most ``count`` chunks with similarity above ``threshold``, best first.
        """
        with self.engine.begin() as conn:
            rows = conn.execute(
                sa_text("""
                    SELECT id,
                           content,
                           metadata,
                           1 - (embedding <=> CAST(:qv AS vector)) AS similarity
                    FROM document_chunks
                    WHERE embedding IS NOT NULL
                      AND 1 - (embedding <=> CAST(:qv AS vector)) > :threshold
                    ORDER BY embedding <=> CAST(:qv AS vector)
                    LIMIT :k
                """).bindparams(bindparam("qv", type_=Vector(EMBEDDING_DIM))),
                {"qv": embedding, "threshold": threshold, "k": count},
            ).mappings().all()
        return [dict(r) for r in rows]

    def recent_unembedded_chunks(
        self, document_keys: Optional[Sequence[str]], limit: int
    ) -> List[Dict]:
        """Newest chunks stored without an embedding, optionally limited to some documents."""
        sql = "SELECT id, content, metadata FROM document_chunks WHERE embedding IS NULL"
        params = {"limit": limit}
        if document_keys is not None:
            sql += " AND metadata->>'document_id' = ANY(:keys)"
            params["keys"] = list(document_keys)
        sql += " ORDER BY created_at DESC LIMIT :limit"
        with self.engine.begin() as conn:
            rows = conn.execute(sa_text(sql), params).mappings().all()
        return [dict(r) for r in rows]

    def recent_chunks(self, limit: int) -> List[Dict]:
        with self.engine.begin() as conn:
            rows = conn.execute(
                sa_text("""
                    SELECT id,
                           LENGTH(content) AS content_length,
                           embedding IS NOT NULL AS has_embedding,
                           metadata,
                           created_at
                    FROM document_chunks
                    ORDER BY created_at DESC
                    LIMIT :limit
                """),
                {"limit": limit},
            ).mappings().all()
        return [dict(r) for r in rows]

    def ping(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(sa_text("SELECT 1 FROM documents LIMIT 1"))
            conn.execute(sa_text("SELECT 1 FROM document_chunks LIMIT 1"))


def _document(row) -> Dict:
    doc = dict(row)
    if doc.get("file_data") is not None:
        doc["file_data"] = bytes(doc["file_data"])
    return doc


_store = ChunkStore(default_engine)


def get_store() -> ChunkStore:
    """FastAPI dependency returning the shared store."""
    return _store
