"""Tests for the question answering state machine."""
import pytest

from knowhub import config
from knowhub.errors import ConfigurationError, ProviderError, ValidationError
from knowhub.rag.answerer import RAGOrchestrator, validate_prompt_template
from knowhub.rag.ingest import IngestionCoordinator
from knowhub.rag.retriever import Retriever
from knowhub.rag.store import VectorStore
from tests.conftest import FakeEmbedder, FakeGenerator


class MappedEmbedder:
    """Embeds each known text as a fixed vector."""

    def __init__(self, vectors):
        self.vectors = vectors

    async def embed(self, text):
        return self.vectors[text]


@pytest.fixture
def query_calls(store, monkeypatch):
    """Count similarity queries made against the store."""
    calls = []
    original = store.query

    async def counting_query(vector, k):
        calls.append(k)
        return await original(vector, k)

    monkeypatch.setattr(store, "query", counting_query)
    return calls


@pytest.fixture
def orchestrator(store, embedder, generator, history):
    return RAGOrchestrator(Retriever(store, embedder), generator, history, top_k=5)


class TestAnswerQuestion:
    """Tests for answer_question()."""

    async def test_empty_store_returns_fallback(
        self, orchestrator, embedder, generator, history, query_calls
    ):
        answer = await orchestrator.answer_question("What is in my documents?")

        assert answer.answer == config.NO_CONTEXT_ANSWER
        assert answer.context_documents == []
        assert len(embedder.calls) == 1
        assert query_calls == [5]
        assert generator.prompts == []

        records = history.recent()
        assert len(records) == 1
        assert records[0].answer == config.NO_CONTEXT_ANSWER

    async def test_answers_from_ingested_document(
        self, orchestrator, coordinator, make_document, embedder, generator, history, query_calls
    ):
        document = make_document("a.txt", "The sky is blue. Grass is green.")
        assert await coordinator.ingest(document) == 1

        answer = await orchestrator.answer_question("What color is the sky?")

        assert answer.answer == "The sky is blue."
        assert answer.context_documents == ["a.txt"]
        assert embedder.calls == ["The sky is blue. Grass is green.", "What color is the sky?"]
        assert query_calls == [5]
        assert len(generator.prompts) == 1
        assert "The sky is blue. Grass is green." in generator.prompts[0]
        assert "What color is the sky?" in generator.prompts[0]

        record = history.recent()[0]
        assert record.question == "What color is the sky?"
        assert record.context_documents == ["a.txt"]

    @pytest.mark.parametrize(
        "question_vector,expected_sources,expected_chunks",
        [
            (
                [1.0, 0.0, 0.0],
                ["a.txt", "b.txt"],
                ["The sky is blue.", "The sky is grey.", "Grass is green."],
            ),
            (
                [1.0, 1.0, 0.0],
                ["b.txt", "a.txt"],
                ["The sky is grey.", "Grass is green.", "The sky is blue."],
            ),
        ],
    )
    async def test_sources_distinct_in_rank_order(
        self, generator, history, make_document, question_vector, expected_sources, expected_chunks
    ):
        vectors = {
            "The sky is blue.": [1.0, 0.1, 0.0],
            "The sky is grey.": [0.5, 0.5, 0.0],
            "Grass is green.": [0.2, 1.0, 0.0],
            "What color is the sky?": question_vector,
        }
        embedder = MappedEmbedder(vectors)
        store = VectorStore(3)
        coordinator = IngestionCoordinator(store, embedder)
        for name, text in [("a.txt", "The sky is blue."), ("b.txt", "The sky is grey."), ("a.txt", "Grass is green.")]:
            await coordinator.ingest(make_document(name, text))
        orchestrator = RAGOrchestrator(Retriever(store, embedder), generator, history)

        answer = await orchestrator.answer_question("What color is the sky?")

        assert answer.context_documents == expected_sources
        assert history.recent()[0].context_documents == expected_sources
        assert "\n\n".join(expected_chunks) in generator.prompts[0]

    @pytest.mark.parametrize("question", ["", "   "])
    async def test_empty_question_rejected(self, orchestrator, embedder, history, question):
        with pytest.raises(ValidationError):
            await orchestrator.answer_question(question)

        assert embedder.calls == []
        assert history.recent() == []

    async def test_generation_failure_writes_no_history(
        self, store, coordinator, make_document, embedder, history
    ):
        await coordinator.ingest(make_document())
        generator = FakeGenerator(error=ProviderError("model not loaded"))
        orchestrator = RAGOrchestrator(Retriever(store, embedder), generator, history)

        with pytest.raises(ProviderError):
            await orchestrator.answer_question("What color is the sky?")

        assert history.recent() == []

    async def test_embedding_failure_writes_no_history(self, store, generator, history):
        embedder = FakeEmbedder(fail_on_call=1)
        orchestrator = RAGOrchestrator(Retriever(store, embedder), generator, history)

        with pytest.raises(ProviderError):
            await orchestrator.answer_question("Anything?")

        assert generator.prompts == []
        assert history.recent() == []


class TestPromptTemplate:
    """Tests for prompt template validation."""

    def test_default_template_is_valid(self):
        validate_prompt_template(config.PROMPT_TEMPLATE)

    @pytest.mark.parametrize(
        "template",
        [
            "Context: {context}",
            "Question: {question}",
            "{context} {question} {extra}",
            "{context} {question",
        ],
    )
    def test_bad_template_rejected_at_construction(self, store, embedder, generator, history, template):
        with pytest.raises(ConfigurationError):
            RAGOrchestrator(Retriever(store, embedder), generator, history, prompt_template=template)

    def test_build_prompt_substitutes_both_fields(self, orchestrator):
        orchestrator.prompt_template = "C={context} Q={question}"
        assert orchestrator.build_prompt("ctx", "why?") == "C=ctx Q=why?"
