"""
SpecialistRouter: dispatches a classified query to the PMID or search specialist,
optionally handing the findings to a front desk presenter for the user's language.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Tuple

from autogen_agentchat.agents import AssistantAgent
from autogen_core import CancellationToken
from autogen_core.models import ChatCompletionClient

from .model_client import build_openai_client, dump_messages, extract_text
from .research_prompts import front_desk_prompt
from .schemas import QueryClassification, QueryType
from .settings import ModelRole, Settings
from .specialist_agents import BiomedicalSearchAgent, PMIDDetailsAgent, SpecialistRun

logger = logging.getLogger(__name__)


class FrontDeskAgent:
    """Presentation wrapper; it never changes which specialist answers."""

    name = "front_desk"

    def __init__(
        self,
        *,
        model_client: Optional[ChatCompletionClient] = None,
        role: Optional[ModelRole] = None,
    ) -> None:
        self._model_client = model_client or build_openai_client(role or Settings().roles["front_desk"])

    @staticmethod
    def applies_to(classification: QueryClassification) -> bool:
        return classification.detected_language.strip().lower() != "english"

    async def present(
        self,
        findings: str,
        language: str,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Tuple[str, List[dict]]:
        """Return the findings re-presented in `language`, or unchanged if the call fails."""

        task = f"UserLanguage: {language}\nHere are the specialist findings:\n\n{findings}"
        try:
            assistant = AssistantAgent(
                name=self.name,
                model_client=self._model_client,
                system_message=front_desk_prompt(language=language),
                description="Presents specialist findings in the user's language.",
            )
            result = await assistant.run(task=task, cancellation_token=cancellation_token)
            text = extract_text(result.messages, preferred_source=self.name)
        except Exception as exc:
            logger.warning("Front desk presentation failed, returning specialist findings: %s", exc)
            return findings, []
        return (text or findings), dump_messages(result.messages)


class SpecialistRouter:
    """`identifier_details` goes to the PMID specialist; everything else goes to the search specialist."""

    def __init__(
        self,
        *,
        pmid_agent: PMIDDetailsAgent,
        search_agent: BiomedicalSearchAgent,
        front_desk: Optional[FrontDeskAgent] = None,
    ) -> None:
        self._pmid_agent = pmid_agent
        self._search_agent = search_agent
        self._front_desk = front_desk

    @staticmethod
    def select(classification: QueryClassification) -> str:
        if classification.query_type is QueryType.IDENTIFIER_DETAILS:
            return PMIDDetailsAgent.name
        return BiomedicalSearchAgent.name

    async def route(
        self,
        query: str,
        classification: QueryClassification,
        *,
        resume_state: Optional[str] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> SpecialistRun:
        specialist = self.select(classification)
        logger.info("Routing to %s", specialist)
        if specialist == PMIDDetailsAgent.name:
            run = await self._pmid_agent.run(
                query,
                classification.extracted_identifier,
                resume_state=resume_state,
                cancellation_token=cancellation_token,
            )
        else:
            run = await self._search_agent.run(
                query,
                resume_state=resume_state,
                cancellation_token=cancellation_token,
            )

        if self._front_desk is None or not run.output.strip():
            return run
        if not self._front_desk.applies_to(classification):
            return run

        presented, transcript = await self._front_desk.present(
            run.output,
            classification.detected_language,
            cancellation_token,
        )
        return replace(run, output=presented, transcript=run.transcript + transcript)
