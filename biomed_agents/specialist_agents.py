"""
Specialist agents that research a query with the PubTator3 tools.

- `PMIDDetailsAgent` presents one paper identified by its PMID.
- `BiomedicalSearchAgent` resolves entities, searches the literature and
  writes a cited synthesis.

Both drive the shared tool server connection through AutoGen function tools.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from autogen_agentchat.agents import AssistantAgent
from autogen_core import CancellationToken
from autogen_core.model_context import BufferedChatCompletionContext
from autogen_core.models import ChatCompletionClient
from autogen_core.tools import FunctionTool

from domain.query_builder import (
    build_entity_query,
    build_text_query,
    relation_query,
    validate_search_query,
)

from .model_client import build_openai_client, dump_messages, extract_text, make_serializable
from .research_prompts import BIOMEDICAL_SEARCH_PROMPT, PMID_DETAILS_PROMPT
from .settings import ModelRole, Settings

logger = logging.getLogger(__name__)

PMID_PATTERN = re.compile(r"\b(\d{7,9})\b")
CONTEXT_BUFFER_SIZE = 20


class ToolClient(Protocol):
    async def call_tool(self, tool_name: str, **arguments: Any) -> Any: ...


@dataclass(slots=True)
class SpecialistRun:
    """Output of one specialist conversation."""

    agent: str
    output: str
    transcript: List[Dict[str, Any]] = field(default_factory=list)
    state: Optional[str] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)


class PubTatorTools:
    """Wraps the tool server as AutoGen function tools and records every call."""

    def __init__(self, tool_client: ToolClient, *, require_entity_resolution: bool = True) -> None:
        self._client = tool_client
        self._require_entity_resolution = require_entity_resolution
        self._entity_lookups = 0
        self.action_history: List[Dict[str, Any]] = []

    def reset(self) -> None:
        self._entity_lookups = 0
        self.action_history = []

    async def find_entity(self, query: str, concept: Optional[str] = None, limit: int = 5) -> str:
        """Resolve a biomedical concept to its PubTator3 entity identifier."""
        self._entity_lookups += 1
        return await self._call("find_entity", query=query, concept=concept, limit=limit)

    async def search_pubtator(self, query: str, limit: int = 10) -> str:
        """Search PubTator3 publications."""
        self._check_resolved("search_pubtator")
        query = validate_search_query(query)
        return await self._call("search_pubtator", query=query, limit=limit)

    async def search_entities(self, entity_ids: List[str], limit: int = 10) -> str:
        """Search for publications mentioning all of the given entity identifiers."""
        self._check_resolved("search_entities")
        return await self._call("search_pubtator", query=build_entity_query(entity_ids), limit=limit)

    async def search_terms(self, groups: List[List[str]], limit: int = 10) -> str:
        """Free-text search: alternatives inside a group are ORed, groups are ANDed."""
        self._check_resolved("search_terms")
        return await self._call("search_pubtator", query=build_text_query(groups), limit=limit)

    async def search_relations(
        self,
        entity_id: str,
        relation_type: str = "ANY",
        target: str = "ANY",
        limit: int = 10,
    ) -> str:
        """Search for publications asserting a relation of `entity_id` to `target`."""
        self._check_resolved("search_relations")
        query = relation_query(entity_id, relation_type=relation_type, target=target)
        return await self._call("search_pubtator", query=query, limit=limit)

    def _check_resolved(self, tool_name: str) -> None:
        if self._require_entity_resolution and self._entity_lookups == 0:
            raise ValueError(
                f"Resolve every biomedical concept with find_entity before calling {tool_name}."
            )

    async def get_paper_text(
        self,
        pmids: Optional[str] = None,
        pmcids: Optional[str] = None,
        format: str = "biocjson",
        full: bool = False,
    ) -> str:
        """Retrieve publication text by comma-separated PMIDs or PMC IDs."""
        return await self._call("get_paper_text", pmids=pmids, pmcids=pmcids, format=format, full=full)

    async def find_related_entities(
        self,
        entity_id: str,
        relation_type: Optional[str] = None,
        target_type: Optional[str] = None,
    ) -> str:
        """Find entities related to an entity identifier."""
        return await self._call(
            "find_related_entities",
            entityId=entity_id,
            relationType=relation_type,
            targetType=target_type,
        )

    async def _call(self, tool_name: str, **arguments: Any) -> str:
        arguments = {key: value for key, value in arguments.items() if value is not None}
        entry: Dict[str, Any] = {
            "tool": tool_name,
            "arguments": arguments,
            "timestamp": datetime.utcnow().isoformat(timespec="seconds") + "Z",
        }
        self.action_history.append(entry)
        try:
            result = await self._client.call_tool(tool_name, **arguments)
        except Exception as exc:
            entry["error"] = str(exc)
            logger.warning("Tool %s failed: %s", tool_name, exc)
            raise
        entry["ok"] = True
        if isinstance(result, str):
            return result
        return json.dumps(make_serializable(result), ensure_ascii=False)

    def function_tools(self) -> List[FunctionTool]:
        return [
            FunctionTool(
                func=self.find_entity,
                name="find_entity",
                description=(
                    "Resolve a biomedical concept to its standardized PubTator3 identifier "
                    "(e.g. @DISEASE_Anxiety). Optional concept: gene, disease, chemical, species, "
                    "variant, cellline."
                ),
            ),
            FunctionTool(
                func=self.search_pubtator,
                name="search_pubtator",
                description=(
                    "Search PubTator3. Entity identifiers must be joined with AND in a flat chain "
                    "without parentheses; free-text queries may use parenthesised groups."
                ),
            ),
            FunctionTool(
                func=self.search_entities,
                name="search_entities",
                description=(
                    "Search PubTator3 for papers mentioning every given entity identifier "
                    "(from find_entity); the identifiers are joined into a flat AND chain for you."
                ),
            ),
            FunctionTool(
                func=self.search_terms,
                name="search_terms",
                description=(
                    "Free-text PubTator3 search from groups of terms: terms in a group are "
                    "alternatives (OR), groups are all required (AND). Do not put entity identifiers here."
                ),
            ),
            FunctionTool(
                func=self.search_relations,
                name="search_relations",
                description=(
                    "Search PubTator3 for papers asserting a relation between an entity identifier and "
                    "a target (an entity identifier, a concept type such as DISEASE, or ANY). "
                    "relation_type is one of ANY, treat, cause, associate, inhibit, prevent, ..."
                ),
            ),
            FunctionTool(
                func=self.get_paper_text,
                name="get_paper_text",
                description=(
                    "Retrieve publication text. Provide exactly one of pmids or pmcids "
                    "(comma-separated). Formats: biocjson (default), biocxml, pubtator."
                ),
            ),
            FunctionTool(
                func=self.find_related_entities,
                name="find_related_entities",
                description=(
                    "Find entities related to an entity identifier, optionally filtered by relation "
                    "type (treat, cause, associate, ...) and target type (gene, disease, chemical, variant)."
                ),
            ),
        ]


class _SpecialistAgent:
    """Shared conversation handling for the specialists."""

    name = "specialist"
    description = ""
    role_key = "search"

    def __init__(
        self,
        *,
        tool_client: ToolClient,
        system_message: str,
        model_client: Optional[ChatCompletionClient] = None,
        role: Optional[ModelRole] = None,
        max_tool_iterations: int = 6,
        context_buffer_size: int = CONTEXT_BUFFER_SIZE,
        require_entity_resolution: bool = True,
    ) -> None:
        self._context_buffer_size = max(1, context_buffer_size)
        self._model_client = model_client or build_openai_client(role or Settings().roles[self.role_key])
        self.tools = PubTatorTools(tool_client, require_entity_resolution=require_entity_resolution)
        self._assistant = AssistantAgent(
            name=self.name,
            model_client=self._model_client,
            system_message=system_message,
            description=self.description,
            tools=self.tools.function_tools(),
            model_context=BufferedChatCompletionContext(buffer_size=self._context_buffer_size),
            max_tool_iterations=max(1, max_tool_iterations),
            reflect_on_tool_use=True,
        )

    async def _prepare(self, resume_state: Optional[str], token: CancellationToken) -> None:
        await self._assistant.on_reset(token)
        self.tools.reset()
        if resume_state:
            await self._restore(resume_state)

    async def _converse(self, task: str, token: CancellationToken) -> SpecialistRun:
        logger.info("%s researching: %s", self.name, task[:200])
        result = await self._assistant.run(task=task, cancellation_token=token)
        output = extract_text(result.messages, preferred_source=self.name)
        return SpecialistRun(
            agent=self.name,
            output=output,
            transcript=dump_messages(result.messages),
            state=await self._snapshot(),
            tool_calls=list(self.tools.action_history),
        )

    async def _snapshot(self) -> Optional[str]:
        try:
            state = await self._assistant.save_state()
        except Exception:
            logger.exception("Failed to snapshot %s state.", self.name)
            return None
        snapshot = _trim_context(make_serializable(dict(state)), self._context_buffer_size)
        return json.dumps({"agent": self.name, "state": snapshot})

    async def _restore(self, token: str) -> None:
        try:
            payload = json.loads(token)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable run state token.")
            return
        if not isinstance(payload, dict) or payload.get("agent") != self.name:
            return
        try:
            await self._assistant.load_state(payload.get("state") or {})
            logger.info("Resumed %s from saved run state.", self.name)
        except Exception as exc:
            logger.warning("Could not resume %s from saved state: %s", self.name, exc)
            await self._assistant.on_reset(CancellationToken())


class PMIDDetailsAgent(_SpecialistAgent):
    """Fetches full text for a PMID first, falling back to a search by the PMID."""

    name = "pmid_details_specialist"
    description = "Retrieves and presents the details of a paper identified by its PMID."
    role_key = "pmid"

    def __init__(self, *, tool_client: ToolClient, **kwargs: Any) -> None:
        super().__init__(
            tool_client=tool_client,
            system_message=PMID_DETAILS_PROMPT,
            require_entity_resolution=False,
            **kwargs,
        )

    async def run(
        self,
        query: str,
        identifier: Optional[str] = None,
        *,
        resume_state: Optional[str] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> SpecialistRun:
        token = cancellation_token or CancellationToken()
        await self._prepare(resume_state, token)

        if identifier is None:
            match = PMID_PATTERN.search(query)
            identifier = match.group(1) if match else None

        parts = [query]
        if identifier:
            source, material = await self.prefetch(identifier)
            parts.append(f"PMID: {identifier}")
            if material:
                parts.append(f"Retrieved material ({source}):\n{material}")
            else:
                parts.append("No material could be retrieved by the host for this PMID.")
        return await self._converse("\n\n".join(parts), token)

    async def prefetch(self, identifier: str) -> Tuple[str, str]:
        """Return `(tool, text)` from get_paper_text, or from search_pubtator when that fails or is empty."""

        try:
            text = await self.tools.get_paper_text(pmids=identifier)
        except (RuntimeError, ValueError) as exc:
            logger.info("get_paper_text failed for %s, falling back to search: %s", identifier, exc)
            text = ""
        if _has_content(text):
            return "get_paper_text", text

        try:
            hits = await self.tools.search_pubtator(query=identifier)
        except (RuntimeError, ValueError) as exc:
            logger.warning("Fallback search failed for %s: %s", identifier, exc)
            return "search_pubtator", ""
        if not _has_content(hits):
            return "search_pubtator", ""
        return "search_pubtator", hits


class BiomedicalSearchAgent(_SpecialistAgent):
    """Entity resolution first, then literature search, then a cited synthesis."""

    name = "biomedical_search_specialist"
    description = "Performs general biomedical literature research with PubTator3."
    role_key = "search"

    def __init__(self, *, tool_client: ToolClient, **kwargs: Any) -> None:
        super().__init__(
            tool_client=tool_client,
            system_message=BIOMEDICAL_SEARCH_PROMPT,
            require_entity_resolution=True,
            **kwargs,
        )

    async def run(
        self,
        query: str,
        *,
        resume_state: Optional[str] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> SpecialistRun:
        token = cancellation_token or CancellationToken()
        await self._prepare(resume_state, token)
        return await self._converse(query, token)


def _trim_context(state: Dict[str, Any], limit: int) -> Dict[str, Any]:
    """Keep only the newest `limit` context messages, never starting on a tool result."""
    context = state.get("llm_context")
    if not isinstance(context, dict) or not isinstance(context.get("messages"), list):
        return state
    messages = context["messages"][-limit:]
    while messages and isinstance(messages[0], dict) and messages[0].get("type") == "FunctionExecutionResultMessage":
        messages = messages[1:]
    return {**state, "llm_context": {**context, "messages": messages}}


def _has_content(text: Optional[str]) -> bool:
    stripped = (text or "").strip()
    if not stripped or stripped in {'""', "null", "[]", "{}"}:
        return False
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError:
        return True
    if isinstance(payload, dict) and "results" in payload:
        return bool(payload["results"])
    return True
