"""Second model call: rows + question -> natural-language answer."""

import json
from typing import Any

from openai import OpenAIError

from finquery.errors import SynthesisError
from finquery.llm_client import OpenAIClient
from finquery.logger import get_logger
from finquery.models import ChatMessage, ResultSet
from finquery.prompts import build_answer_system_prompt

logger = get_logger("finquery.answer_synthesizer")


def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str)
    return str(value).replace("\n", " ").replace("|", "/")


def serialize_result_set(result_set: ResultSet, max_rows: int = 50, max_chars: int = 8000) -> str:
    """Render rows as a pipe-separated table, bounded by row count and size.

    Rows beyond either bound are dropped and replaced by an
    ``(N more rows omitted)`` line.
    """
    if not result_set.rows:
        return "(no rows)"

    columns = result_set.columns or list(result_set.rows[0].keys())
    lines = [" | ".join(columns)[:max_chars]]
    size = len(lines[0])
    shown = 0
    for row in result_set.rows[:max_rows]:
        line = " | ".join(_cell(row.get(column)) for column in columns)
        if size + len(line) + 1 > max_chars:
            break
        lines.append(line)
        size += len(line) + 1
        shown += 1

    omitted = result_set.row_count - shown
    if omitted:
        lines.append(f"({omitted} more rows omitted)")
    return "\n".join(lines)


class AnswerSynthesizer:
    """Phrases a query result as an answer to the user's question."""

    def __init__(
        self,
        llm_client: OpenAIClient,
        max_rows: int = 50,
        max_chars: int = 8000,
    ):
        self.llm_client = llm_client
        self.max_rows = max_rows
        self.max_chars = max_chars

    async def synthesize(
        self,
        question: str,
        result_set: ResultSet,
        history: list[ChatMessage] | None = None,
    ) -> str:
        data = serialize_result_set(result_set, self.max_rows, self.max_chars)
        system = build_answer_system_prompt(question, data)

        messages = list(history or []) + [ChatMessage(role="user", content=question)]

        try:
            answer = await self.llm_client.complete(system, messages, stage="answer")
        except OpenAIError as exc:
            raise SynthesisError(f"Answer synthesis call failed: {exc}", stage="answer") from exc

        if not answer:
            raise SynthesisError("Language model returned an empty answer", stage="answer")
        return answer
