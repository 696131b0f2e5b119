"""OpenAI chat-completion client shared by both synthesis stages."""

import os
import time

from openai import AsyncOpenAI

from finquery.cost_tracker import CostRecord
from finquery.logger import get_logger
from finquery.models import ChatMessage

logger = get_logger("finquery.llm_client")


class OpenAIClient:
    """Async OpenAI client returning a single text completion per call."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
        timeout: float = 30.0,
    ):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required")

        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.temperature = temperature
        self.costs: list[CostRecord] = []

    @property
    def last_cost(self) -> CostRecord | None:
        return self.costs[-1] if self.costs else None

    async def complete(
        self,
        system: str,
        messages: list[ChatMessage],
        stage: str = "",
    ) -> str:
        """Send system instructions plus messages; return the completion text.

        Returns an empty string when the model produced no content. Errors
        from the OpenAI SDK (including timeouts) propagate unchanged.
        """
        record = CostRecord(model=self.model, stage=stage)
        self.costs.append(record)

        payload = [{"role": "system", "content": system}]
        payload.extend({"role": m.role, "content": m.content} for m in messages)
        logger.debug(
            "Calling %s for %s (%d messages, %d chars of instructions)",
            self.model, stage or "completion", len(payload), len(system),
        )

        t_start = time.perf_counter()
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=payload,
            temperature=self.temperature,
        )
        record.total_time = time.perf_counter() - t_start

        if response.usage:
            record.input_tokens = response.usage.prompt_tokens
            record.output_tokens = response.usage.completion_tokens

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()
