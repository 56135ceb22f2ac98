import pytest

from docchat import config
from docchat.services import rag_service
from docchat.services.rag_service import (
    NO_INFORMATION_ANSWER,
    answer_question,
    build_context,
    retrieve_chunks,
)

from .conftest import quota_error, unit_vector


@pytest.fixture
def query_vector(monkeypatch):
    """Pin the question embedding to unit_vector(0)."""
    monkeypatch.setattr(rag_service, "embed_text", lambda text: unit_vector(0))


def test_no_key_returns_demo_answer(store):
    store.add_chunk("key-a", "Refunds take five days.")
    result = answer_question("How long do refunds take?", None, store)

    assert 'How long do refunds take?' in result["answer"]
    assert len(result["sources"]) == 1
    assert result["sources"][0]["id"] == "demo-1"


def test_vector_match_is_used_as_context(store, fake_openai, query_vector):
    chunk = store.add_chunk("key-a", "Refunds take five days.", unit_vector(0), "policy.txt")
    store.add_chunk("key-b", "Unrelated text about shipping.", unit_vector(1), "shipping.txt")

    result = answer_question("How long do refunds take?", None, store)

    assert result["answer"] == "Grounded answer."
    assert result["sources"] == [
        {"id": chunk["id"], "content": chunk["content"], "metadata": chunk["metadata"]}
    ]

    kwargs = fake_openai.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == config.OPENAI_MODEL
    assert kwargs["max_tokens"] == 1000
    assert kwargs["temperature"] == 0.7
    system, user = kwargs["messages"]
    assert system["role"] == "system"
    assert user["role"] == "user"
    assert "Document: policy.txt\nContent: Refunds take five days." in user["content"]
    assert "How long do refunds take?" in user["content"]


def test_vector_results_are_post_filtered_by_document(store, fake_openai, query_vector):
    store.add_chunk("key-a", "Refunds take five days.", unit_vector(0))
    simple = store.add_chunk("key-b", "Whole text of document b.", None, "b.txt")

    chunks = retrieve_chunks("refunds?", ["key-b"], store)

    assert [c["id"] for c in chunks] == [simple["id"]]


def test_empty_selection_does_not_use_unfiltered_results(store, fake_openai, query_vector):
    store.add_chunk("key-a", "Refunds take five days.", unit_vector(0))
    store.add_chunk("key-a", "Whole text of document a.", None)

    assert retrieve_chunks("refunds?", [], store) == []

    result = answer_question("refunds?", [], store)
    assert result == {"answer": NO_INFORMATION_ANSWER, "sources": []}
    fake_openai.chat.completions.create.assert_not_called()


def test_below_threshold_falls_back_to_unembedded(store, fake_openai, query_vector):
    store.add_chunk("key-a", "Orthogonal content here.", unit_vector(5))
    simple = store.add_chunk("key-b", "Whole text of document b.", None)

    chunks = retrieve_chunks("anything", None, store)
    assert [c["id"] for c in chunks] == [simple["id"]]


def test_search_failure_falls_back(store, fake_openai, query_vector):
    store.add_chunk("key-a", "Refunds take five days.", unit_vector(0))
    simple = store.add_chunk("key-a", "Whole text of document a.", None)
    store.fail_search = True

    chunks = retrieve_chunks("refunds?", None, store)
    assert [c["id"] for c in chunks] == [simple["id"]]


def test_fallback_is_newest_first_and_capped(store, fake_openai, query_vector):
    added = [store.add_chunk(f"key-{i}", f"Document number {i} text.", None) for i in range(7)]

    chunks = retrieve_chunks("anything", None, store)
    assert [c["id"] for c in chunks] == [c["id"] for c in reversed(added)][:5]


def test_no_chunks_returns_fixed_answer(store, fake_openai, query_vector):
    result = answer_question("anything", None, store)

    assert result == {"answer": NO_INFORMATION_ANSWER, "sources": []}
    fake_openai.chat.completions.create.assert_not_called()


def test_quota_error_on_completion_degrades_to_echo(store, fake_openai, query_vector):
    store.add_chunk("key-a", "Whole text of document a.", None)
    fake_openai.chat.completions.create.side_effect = quota_error()

    result = answer_question("Is it covered?", None, store)

    assert '"Is it covered?"' in result["answer"]
    assert result["sources"] == []


def test_other_completion_errors_propagate(store, fake_openai, query_vector):
    store.add_chunk("key-a", "Whole text of document a.", None)
    fake_openai.chat.completions.create.side_effect = RuntimeError("bad gateway")

    with pytest.raises(RuntimeError):
        answer_question("Is it covered?", None, store)


def test_question_is_embedded_with_openai(store, fake_openai):
    store.add_chunk("key-a", "Refunds take five days.", unit_vector(0), "policy.txt")

    result = answer_question("refunds?", None, store)

    fake_openai.embeddings.create.assert_called_once()
    assert result["sources"][0]["metadata"]["document_name"] == "policy.txt"


def test_build_context_joins_with_blank_lines():
    chunks = [
        {"content": "one", "metadata": {"document_name": "a.txt"}},
        {"content": "two", "metadata": {"document_name": "b.txt"}},
    ]
    assert build_context(chunks) == "Document: a.txt\nContent: one\n\nDocument: b.txt\nContent: two"
