import asyncio
import json
import time
import os
import logging
from typing import TypeVar, Type
from pydantic import BaseModel
from openai import OpenAI
from dotenv import load_dotenv

from exit_valuation.models.snapshot import LLMCallLog

load_dotenv()
logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class LLMService:
    def __init__(self, api_key: str | None = None, model: str | None = None):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.client = OpenAI(api_key=api_key) if api_key else None
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o")

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def structured_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[T],
        step_name: str,
        max_retries: int = 2,
        call_log: list[LLMCallLog] | None = None,
    ) -> T:
        """Call OpenAI with JSON mode and parse response into a Pydantic model.

        Each attempt that gets a response is appended to `call_log`, which the
        caller owns so concurrent runs never share a log.
        """
        return await asyncio.to_thread(
            self._structured_completion_sync,
            system_prompt, user_prompt, response_model, step_name, max_retries, call_log,
        )

    def _structured_completion_sync(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[T],
        step_name: str,
        max_retries: int,
        call_log: list[LLMCallLog] | None,
    ) -> T:
        if self.client is None:
            raise RuntimeError("OPENAI_API_KEY is not configured")

        schema = response_model.model_json_schema()
        full_system = (
            f"{system_prompt}\n\n"
            f"Respond with valid JSON matching this schema:\n{json.dumps(schema, indent=2)}"
        )

        last_error = None
        for attempt in range(max_retries + 1):
            start = time.time()
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    temperature=0.3,
                    response_format={"type": "json_object"},
                    messages=[
                        {"role": "system", "content": full_system},
                        {"role": "user", "content": user_prompt},
                    ],
                )
                duration_ms = (time.time() - start) * 1000
                content = response.choices[0].message.content
                tokens = response.usage.total_tokens if response.usage else None

                logger.info(
                    f"LLM structured call [{step_name}]: model={self.model}, "
                    f"tokens={tokens}, duration={duration_ms:.0f}ms"
                )
                logger.debug(f"LLM [{step_name}] response: {content[:500]}...")

                if call_log is not None:
                    call_log.append(LLMCallLog(
                        step_name=step_name,
                        model=self.model,
                        system_prompt=full_system,
                        user_prompt=user_prompt,
                        response=content,
                        tokens_used=tokens,
                        duration_ms=duration_ms,
                    ))

                return response_model.model_validate_json(content)

            except Exception as e:
                last_error = e
                logger.warning(f"LLM call attempt {attempt + 1} failed for [{step_name}]: {e}")

        raise RuntimeError(f"LLM call failed after {max_retries + 1} attempts: {last_error}")
