"""QualityJudgeAgent: critiques and scores research answers."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from autogen_agentchat.agents import AssistantAgent
from autogen_core import CancellationToken
from autogen_core.models import ChatCompletionClient

from .errors import JudgeUnavailable
from .model_client import build_openai_client, extract_text, make_serializable
from .research_prompts import QUALITY_JUDGE_PROMPT
from .schemas import QualityEvaluation, parse_model_output
from .settings import ModelRole, Settings

logger = logging.getLogger(__name__)


class QualityJudgeAgent:
    """Grades research answers for directness, synthesis and clarity."""

    def __init__(
        self,
        *,
        model_client: Optional[ChatCompletionClient] = None,
        role: Optional[ModelRole] = None,
    ) -> None:
        self._model_client = model_client or build_openai_client(role or Settings().roles["judge"])
        self._assistant = AssistantAgent(
            name="quality_judge",
            model_client=self._model_client,
            system_message=QUALITY_JUDGE_PROMPT,
            description="Evaluates research answers for quality.",
        )

    async def evaluate(
        self,
        question: str,
        answer: str,
        *,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> QualityEvaluation:
        """Raises `JudgeUnavailable` when the model fails or its verdict does not parse."""
        if not question or not question.strip():
            raise ValueError("Question must be a non-empty string.")

        prompt = f'USER QUESTION:\n"{question}"\n\nFINAL ANSWER PROVIDED:\n"{answer}"\n\n'
        if tool_calls:
            prompt += "TOOL CALLS MADE:\n" + json.dumps(make_serializable(tool_calls), indent=2) + "\n\n"
        prompt += "Provide the JSON evaluation as specified."

        token = cancellation_token or CancellationToken()
        logger.info("QualityJudgeAgent scoring response for question: %s", question)
        try:
            await self._assistant.on_reset(token)
            result = await self._assistant.run(task=prompt, cancellation_token=token)
            raw = extract_text(result.messages, preferred_source=self._assistant.name)
        except Exception as exc:
            raise JudgeUnavailable(f"judge call failed: {exc}") from exc

        output = parse_model_output(raw, QualityEvaluation)
        if not output.ok:
            raise JudgeUnavailable(f"unparseable judge output: {raw!r}")
        logger.info("QualityJudgeAgent verdict: %s", output.parsed.score.value)
        return output.parsed
