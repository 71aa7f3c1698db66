"""
AI semantic grading for qualitative requirements.

Grading walks an ordered list of model attempts (primary, then fallback).
Each attempt gets one chat completion bounded by its own timeout; a
timeout, HTTP error, unparseable body or out-of-range field moves on to
the next attempt. When every attempt fails the caller gets a degraded
result (score 0, confidence 0, reasoning naming the cause) and an
AUTO_SCORE_AI_FAILURE activity event is recorded. ``score`` never raises.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from rfp_utils.core.activity import (
    ActivityEvent,
    ActivityEventType,
    ActivitySink,
    record_activity,
)
from rfp_utils.core.jsonval import extract_json_object, validate_ai_score_response
from rfp_utils.core.log import get_logger
from rfp_utils.llm.chat_llm import AsyncChatLLM, ChatCompletionError, ChatMessage
from rfp_tools.auto_score.auto_score_models import AIScoreResult
from rfp_tools.auto_score.prompts_auto_score import (
    build_grading_instruction,
    build_grading_request,
)


@dataclass(frozen=True)
class ModelAttempt:
    model: str
    timeout_s: float = 30.0


DEFAULT_MODEL_ATTEMPTS = (
    ModelAttempt("gpt-4o-mini"),
    ModelAttempt("gpt-4o"),
)

GRADING_PARAMS = {"max_tokens": 500, "temperature": 0.3, "top_p": 0.9}
MAX_REASONING_CHARS = 1000


class AIGradingError(Exception):
    """One attempt produced no usable grade."""


class AISemanticScorer:
    def __init__(
        self,
        client: Optional[AsyncChatLLM] = None,
        attempts: Sequence[ModelAttempt] = DEFAULT_MODEL_ATTEMPTS,
        activity: Optional[ActivitySink] = None,
    ):
        self.client = client
        self.attempts = tuple(attempts)
        self.activity = activity

    def _get_client(self) -> AsyncChatLLM:
        if self.client is None:
            self.client = AsyncChatLLM.from_env()
        return self.client

    async def _grade_once(
        self, attempt: ModelAttempt, messages: list[ChatMessage]
    ) -> AIScoreResult:
        client = self._get_client()
        resp = await asyncio.wait_for(
            client.chat(
                model=attempt.model,
                messages=messages,
                timeout=attempt.timeout_s,
                **GRADING_PARAMS,
            ),
            timeout=attempt.timeout_s,
        )
        try:
            data = extract_json_object(resp.text, label=attempt.model)
        except ValueError as e:
            raise AIGradingError(str(e)) from e

        ok, msg = validate_ai_score_response(data)
        if not ok:
            raise AIGradingError(msg)

        return AIScoreResult(
            raw_score=float(data["rawScore"]),
            reasoning=data["reasoning"],
            confidence=float(data["confidence"]),
            model=attempt.model,
        )

    async def score(
        self,
        question_text: str,
        answer_text: str,
        *,
        rfp_id: Optional[str] = None,
        supplier_response_id: Optional[str] = None,
        requirement_id: Optional[str] = None,
    ) -> AIScoreResult:
        logger = get_logger()
        messages = [
            ChatMessage(role="system", content=build_grading_instruction()),
            ChatMessage(
                role="user", content=build_grading_request(question_text, answer_text)
            ),
        ]

        cause = "no model attempts configured"
        for attempt in self.attempts:
            try:
                result = await self._grade_once(attempt, messages)
                logger.debug(
                    f"AI grade for {requirement_id or 'requirement'} via {attempt.model}: "
                    f"{result.raw_score} (confidence {result.confidence})"
                )
                return result
            except asyncio.TimeoutError:
                cause = f"{attempt.model} timed out after {attempt.timeout_s:g}s"
            except ChatCompletionError as e:
                cause = f"{attempt.model} request failed: {e}"
            except AIGradingError as e:
                cause = f"{attempt.model}: {e}"
            except Exception as e:
                cause = f"{attempt.model}: {type(e).__name__}: {e}"
            logger.warning(f"AI grading attempt failed ({cause})")

        return self._degrade(
            cause,
            question_text=question_text,
            rfp_id=rfp_id,
            supplier_response_id=supplier_response_id,
            requirement_id=requirement_id,
        )

    def _degrade(
        self,
        cause: str,
        *,
        question_text: str,
        rfp_id: Optional[str],
        supplier_response_id: Optional[str],
        requirement_id: Optional[str],
    ) -> AIScoreResult:
        logger = get_logger()
        logger.error(f"AI scoring failed for {requirement_id or 'requirement'}: {cause}")
        record_activity(
            self.activity,
            ActivityEvent(
                event_type=ActivityEventType.AUTO_SCORE_AI_FAILURE,
                summary="AI scoring failed, using fallback score",
                rfp_id=rfp_id,
                supplier_response_id=supplier_response_id,
                details={
                    "requirementId": requirement_id,
                    "question": question_text,
                    "error": cause,
                    "models": [a.model for a in self.attempts],
                },
            ),
        )
        return AIScoreResult(
            raw_score=0.0,
            reasoning=f"AI scoring failed: {cause}"[:MAX_REASONING_CHARS],
            confidence=0.0,
            degraded=True,
        )
