"""First model call: question + schema -> SQL with semantic-search placeholders."""

import datetime as dt
import re

from openai import OpenAIError

from finquery.errors import SynthesisError
from finquery.llm_client import OpenAIClient
from finquery.logger import get_logger
from finquery.models import ChatMessage, SynthesizedQuery
from finquery.prompts import build_sql_system_prompt

logger = get_logger("finquery.query_synthesizer")

_CODE_FENCE = re.compile(r"```(?:sql)?", re.IGNORECASE)


def clean_sql(raw: str) -> str:
    """Strip markdown fences, surrounding whitespace and trailing semicolons."""
    sql = _CODE_FENCE.sub("", raw).strip()
    return sql.rstrip(";").strip()


class QuerySynthesizer:
    """Asks the language model to write tenant-scoped SQL for a question."""

    def __init__(self, llm_client: OpenAIClient, tenant_column: str = "business_id"):
        self.llm_client = llm_client
        self.tenant_column = tenant_column

    async def synthesize(
        self,
        business_id: str,
        question: str,
        schema_description: str,
        history: list[ChatMessage] | None = None,
        now: dt.datetime | None = None,
    ) -> SynthesizedQuery:
        now = now or dt.datetime.now().astimezone()
        system = build_sql_system_prompt(
            business_id=business_id,
            schema_description=schema_description,
            now=now.strftime("%A %Y-%m-%d %H:%M %Z").strip(),
            tenant_column=self.tenant_column,
        )
        messages = list(history or []) + [ChatMessage(role="user", content=question)]

        try:
            raw = await self.llm_client.complete(system, messages, stage="synthesis")
        except OpenAIError as exc:
            raise SynthesisError(f"SQL synthesis call failed: {exc}") from exc

        sql = clean_sql(raw or "")
        if not sql:
            raise SynthesisError("Language model returned no SQL")

        logger.info("Synthesized SQL for business %s: %s", business_id, sql)
        return SynthesizedQuery(sql=sql, business_id=business_id)
