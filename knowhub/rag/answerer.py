"""Question answering over retrieved document chunks.

One call to answer_question() walks a fixed sequence of states:

    RECEIVED -> EMBEDDING_QUERY -> RETRIEVING -> NO_CONTEXT | CONTEXT_FOUND
             -> BUILDING_PROMPT -> GENERATING -> PERSISTING -> DONE

NO_CONTEXT skips straight to PERSISTING with a fixed answer. There is no
retry: any failure aborts the call before anything is persisted. Per call
there is exactly one embedding request, one similarity query, at most one
generation request and exactly one history write.
"""
from dataclasses import dataclass, field
from enum import Enum
from string import Formatter
from typing import List
import structlog

from knowhub import config
from knowhub.errors import ConfigurationError, ValidationError
from knowhub.llm_client import GenerationProvider
from knowhub.memory.history import HistoryRecorder
from knowhub.rag.context import assemble_context
from knowhub.rag.retriever import Retriever

logger = structlog.get_logger()

PROMPT_FIELDS = frozenset({"context", "question"})


class QueryState(str, Enum):
    RECEIVED = "received"
    EMBEDDING_QUERY = "embedding_query"
    RETRIEVING = "retrieving"
    NO_CONTEXT = "no_context"
    CONTEXT_FOUND = "context_found"
    BUILDING_PROMPT = "building_prompt"
    GENERATING = "generating"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass
class QueryAnswer:
    answer: str
    context_documents: List[str] = field(default_factory=list)


def validate_prompt_template(template: str) -> None:
    """Check the template has exactly the {context} and {question} fields.

    Raises:
        ConfigurationError: If a field is missing, unknown or the template
            is malformed
    """
    try:
        fields = {name for _, name, _, _ in Formatter().parse(template) if name is not None}
    except ValueError as e:
        raise ConfigurationError(f"Malformed prompt template: {e}") from e

    missing = PROMPT_FIELDS - fields
    unknown = fields - PROMPT_FIELDS
    if missing or unknown:
        raise ConfigurationError(
            f"Prompt template must use exactly {{context}} and {{question}} "
            f"(missing={sorted(missing)}, unknown={sorted(unknown)})"
        )


class RAGOrchestrator:
    """Answers questions from retrieved context and records the interaction."""

    def __init__(
        self,
        retriever: Retriever,
        generator: GenerationProvider,
        history: HistoryRecorder,
        prompt_template: str = None,
        top_k: int = None,
        no_context_answer: str = None,
    ):
        """Initialize the orchestrator.

        Args:
            retriever: Embeds the question and searches the vector store
            generator: Text generation provider
            history: Recorder for answered questions
            prompt_template: Template with {context} and {question} (default from config)
            top_k: Chunks to retrieve per question (default from config)
            no_context_answer: Answer used when nothing is retrieved (default from config)

        Raises:
            ConfigurationError: If the prompt template is unusable
        """
        self.retriever = retriever
        self.generator = generator
        self.history = history
        self.prompt_template = prompt_template or config.PROMPT_TEMPLATE
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.no_context_answer = no_context_answer or config.NO_CONTEXT_ANSWER

        validate_prompt_template(self.prompt_template)

    def _enter(self, state: QueryState, **context) -> QueryState:
        logger.debug("rag_state_entered", state=state.value, **context)
        return state

    def build_prompt(self, context: str, question: str) -> str:
        return self.prompt_template.format(context=context, question=question)

    async def answer_question(self, question: str) -> QueryAnswer:
        """Answer a question from the ingested documents.

        Args:
            question: The user's question

        Returns:
            QueryAnswer with the answer and the distinct source document names

        Raises:
            ValidationError: If the question is empty (before any provider call)
            ProviderError: If embedding or generation fails
            StorageError: If retrieval or the history write fails
        """
        if not question or not question.strip():
            raise ValidationError("Question must not be empty")

        state = self._enter(QueryState.RECEIVED, question_length=len(question))

        try:
            state = self._enter(QueryState.EMBEDDING_QUERY)
            query_embedding = await self.retriever.embed_query(question)

            state = self._enter(QueryState.RETRIEVING, top_k=self.top_k)
            chunks = await self.retriever.search(query_embedding, top_k=self.top_k)

            if not chunks:
                state = self._enter(QueryState.NO_CONTEXT)
                answer = QueryAnswer(answer=self.no_context_answer, context_documents=[])
            else:
                state = self._enter(QueryState.CONTEXT_FOUND, chunk_count=len(chunks))

                state = self._enter(QueryState.BUILDING_PROMPT)
                context = assemble_context(chunks)
                prompt = self.build_prompt(context.text, question)

                state = self._enter(QueryState.GENERATING, prompt_length=len(prompt))
                answer = QueryAnswer(
                    answer=await self.generator.generate(prompt),
                    context_documents=context.sources,
                )

            state = self._enter(QueryState.PERSISTING)
            self.history.record(question, answer.answer, answer.context_documents)

        except Exception as e:
            logger.error(
                "question_answering_failed",
                state=state.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        self._enter(QueryState.DONE)
        logger.info(
            "question_answered",
            used_context=bool(answer.context_documents),
            source_count=len(answer.context_documents),
            answer_length=len(answer.answer),
        )
        return answer
