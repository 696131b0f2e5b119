"""Question-answering pipeline orchestrator.

question -> QuerySynthesizer -> PlaceholderResolver -> QueryExecutor
         -> AnswerSynthesizer -> answer

Stages run strictly in sequence and share no mutable state, so concurrent
requests can each run as their own task.
"""

from finquery.answer_synthesizer import AnswerSynthesizer
from finquery.config import Settings
from finquery.database import create_engine
from finquery.embeddings import LocalEmbeddings, OpenAIEmbeddings
from finquery.errors import PipelineError
from finquery.executor import QueryExecutor
from finquery.llm_client import OpenAIClient
from finquery.logger import get_logger
from finquery.models import ChatMessage, PipelineResponse, ResolvedQuery
from finquery.prompts import DEFAULT_SCHEMA_DESCRIPTION
from finquery.query_synthesizer import QuerySynthesizer
from finquery.resolver import PlaceholderResolver

logger = get_logger("finquery.pipeline")

GENERIC_FAILURE_MESSAGE = "Sorry, I could not process your question. Please try rephrasing it."


class FinancialQAPipeline:
    """Answers natural-language questions about one business's transactions."""

    def __init__(
        self,
        synthesizer: QuerySynthesizer,
        resolver: PlaceholderResolver,
        executor: QueryExecutor,
        answerer: AnswerSynthesizer,
        schema_description: str = DEFAULT_SCHEMA_DESCRIPTION,
        history_turns: int = 6,
    ):
        self.synthesizer = synthesizer
        self.resolver = resolver
        self.executor = executor
        self.answerer = answerer
        self.schema_description = schema_description
        self.history_turns = history_turns

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        schema_description: str = DEFAULT_SCHEMA_DESCRIPTION,
    ) -> "FinancialQAPipeline":
        llm_client = OpenAIClient(
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        )
        if settings.embedding_provider == "openai":
            embeddings = OpenAIEmbeddings(
                model=settings.embedding_model, dimensions=settings.embedding_dimension
            )
        else:
            embeddings = LocalEmbeddings(model=settings.embedding_model)

        return cls(
            synthesizer=QuerySynthesizer(llm_client, tenant_column=settings.tenant_column),
            resolver=PlaceholderResolver(
                embeddings,
                threshold=settings.similarity_threshold,
                dimension=settings.embedding_dimension,
                timeout=settings.embedding_timeout,
            ),
            executor=QueryExecutor(
                create_engine(settings.database_url),
                tenant_column=settings.tenant_column,
                timeout=settings.query_timeout,
            ),
            answerer=AnswerSynthesizer(
                llm_client,
                max_rows=settings.max_result_rows,
                max_chars=settings.max_result_chars,
            ),
            schema_description=schema_description,
            history_turns=settings.history_turns,
        )

    def _recent(self, history: list[ChatMessage] | None) -> list[ChatMessage]:
        if not history or self.history_turns <= 0:
            return []
        return list(history)[-self.history_turns:]

    async def preview(
        self,
        business_id: str,
        question: str,
        history: list[ChatMessage] | None = None,
    ) -> ResolvedQuery:
        """Synthesize and resolve the query without touching the database."""
        synthesized = await self.synthesizer.synthesize(
            business_id, question, self.schema_description, history=self._recent(history)
        )
        return await self.resolver.resolve(synthesized)

    async def run(
        self,
        business_id: str,
        question: str,
        history: list[ChatMessage] | None = None,
    ) -> tuple[str, ResolvedQuery, int]:
        """Run every stage; raises the failing stage's PipelineError."""
        recent = self._recent(history)
        resolved = await self.preview(business_id, question, recent)
        result_set = await self.executor.execute(resolved)
        answer = await self.answerer.synthesize(question, result_set, recent)
        return answer, resolved, result_set.row_count

    async def ask(
        self,
        business_id: str,
        question: str,
        history: list[ChatMessage] | None = None,
    ) -> PipelineResponse:
        """Run the pipeline; failures are logged and replaced by a generic message."""
        try:
            answer, resolved, row_count = await self.run(business_id, question, history)
        except PipelineError as exc:
            logger.error(
                "Request failed at %s stage for business %s: %s",
                exc.stage, business_id, exc,
            )
            return PipelineResponse(answer=GENERIC_FAILURE_MESSAGE, failed_stage=exc.stage)

        return PipelineResponse(answer=answer, sql=resolved.sql, row_count=row_count)

    async def close(self) -> None:
        await self.executor.close()
