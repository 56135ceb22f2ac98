"""
RAG (Retrieval-Augmented Generation) service.
Handles chunk retrieval, context building, and answer generation.
"""
from datetime import datetime, timezone
from time import perf_counter
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from .. import config
from ..embedding import embed_text
from ..errors import is_quota_error
from ..logging_config import logger
from ..openai_client import get_client, has_openai_key
from ..store import ChunkStore

NO_INFORMATION_ANSWER = (
    "Sorry, I couldn't find relevant information in the documents to answer your question. "
    "Make sure documents have been uploaded and processed."
)

SELECT_DOCUMENT_ANSWER = (
    "Please select at least one document before asking a question."
)

SYSTEM_PROMPT = (
    "You are an assistant that answers questions based on the documents provided.\n"
    "Answer clearly and concisely, using ONLY the information in the context.\n"
    "If the information is not in the documents, say so explicitly.\n"
    "Always cite the source documents when possible."
)


def _demo_answer(question: str) -> Dict:
    return {
        "answer": (
            f'This is a test response. Your question was: "{question}". '
            "To get real answers, configure OpenAI with available credits."
        ),
        "sources": [
            {
                "id": "demo-1",
                "content": "This is sample content demonstrating the functionality.",
                "metadata": {
                    "document_name": "Demo Document",
                    "chunk_index": 0,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            }
        ],
    }


def _quota_answer(question: str) -> Dict:
    return {
        "answer": (
            f'Error: the OpenAI quota is exhausted. Your question was: "{question}". '
            "Add credits to your OpenAI account to use the full functionality."
        ),
        "sources": [],
    }


def retrieve_chunks(
    question: str,
    document_ids: Optional[Sequence[str]],
    store: ChunkStore,
) -> List[Dict]:
    """
    Find chunks to ground an answer.

    1. Vector search over embedded chunks, then keep only chunks whose
       ``metadata.document_id`` is in ``document_ids`` (when given; an empty
       list keeps nothing).
    2. If that yields nothing, the newest chunks stored without an embedding,
       filtered the same way.
    """
    query_embedding = embed_text(question)

    t = perf_counter()
    try:
        chunks = store.match_chunks(query_embedding, config.MATCH_THRESHOLD, config.MATCH_COUNT)
    except SQLAlchemyError as e:
        logger.warning("Vector search failed, falling back to unembedded chunks", error=str(e))
        chunks = []
    logger.info("Vector search", count=len(chunks), time_ms=round((perf_counter() - t) * 1000, 2))

    if document_ids is not None:
        allowed = set(document_ids)
        chunks = [c for c in chunks if c["metadata"].get("document_id") in allowed]
        logger.info("Filtered by selected documents", document_ids=list(document_ids), count=len(chunks))

    if not chunks:
        chunks = store.recent_unembedded_chunks(document_ids, config.FALLBACK_CHUNK_LIMIT)
        logger.info("Fallback lookup", count=len(chunks))

    return chunks


def build_context(chunks: List[Dict]) -> str:
    return "\n\n".join(
        f"Document: {c['metadata'].get('document_name')}\nContent: {c['content']}"
        for c in chunks
    )


def generate_answer(question: str, context: str) -> str:
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"Document context:\n\n{context}\n\nQuestion: {question}"},
    ]
    logger.info("Sending to LLM", model=config.OPENAI_MODEL, context_length=len(context))

    t = perf_counter()
    completion = get_client().chat.completions.create(
        model=config.OPENAI_MODEL,
        messages=messages,
        max_tokens=config.ANSWER_MAX_TOKENS,
        temperature=config.ANSWER_TEMPERATURE,
    )
    logger.info("Received response from LLM", time_s=round(perf_counter() - t, 2))
    return completion.choices[0].message.content or ""


def answer_question(
    question: str,
    document_ids: Optional[Sequence[str]],
    store: ChunkStore,
) -> Dict:
    """
    Answer a question from the stored documents.

    Returns:
        {"answer": str, "sources": [{"id", "content", "metadata"}, ...]}

    Without an OpenAI key a fixed demo answer is returned; when the quota is
    exhausted mid-request the answer degrades to an echo with no sources.
    Other failures propagate.
    """
    if not has_openai_key():
        logger.info("No OpenAI key configured, returning demo answer")
        return _demo_answer(question)

    try:
        chunks = retrieve_chunks(question, document_ids, store)

        if not chunks:
            logger.info("No chunks found, returning default answer")
            return {"answer": NO_INFORMATION_ANSWER, "sources": []}

        answer = generate_answer(question, build_context(chunks))
    except Exception as e:
        if is_quota_error(e):
            logger.warning("OpenAI quota exhausted, returning echo answer")
            return _quota_answer(question)
        raise

    sources = [
        {"id": c["id"], "content": c["content"], "metadata": c["metadata"]}
        for c in chunks
    ]
    return {"answer": answer, "sources": sources}
