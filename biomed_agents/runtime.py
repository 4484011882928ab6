"""
Long-lived agent stack for synchronous hosts such as the Streamlit script thread.

`ResearchRuntime` owns one event loop running on a daemon thread, one tool
server connection on that loop and the research stack built around it.  Every
submit is scheduled on the same loop, so the tool server process survives
across Streamlit reruns instead of being spawned per question.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Coroutine, Dict, Optional, Tuple

from session_state_manager import SessionState

from .factory import build_research_stack
from .judge_loop import JudgeLoop
from .mcp_client import MCPServerConfig, MCPStdioToolClient
from .research_agent import ResearchAgent
from .settings import Settings

logger = logging.getLogger(__name__)

ToolClientFactory = Callable[[Settings], Any]
StackFactory = Callable[[Any, Settings], Tuple[ResearchAgent, JudgeLoop]]


def _stdio_tool_client(settings: Settings) -> MCPStdioToolClient:
    return MCPStdioToolClient(config=MCPServerConfig.pubtator(settings.tool_server_command))


class ResearchRuntime:
    """One loop thread, one tool server connection, one agent stack."""

    def __init__(
        self,
        settings: Settings,
        *,
        tool_client_factory: ToolClientFactory = _stdio_tool_client,
        stack_factory: StackFactory = build_research_stack,
    ) -> None:
        self._settings = settings
        self._tool_client_factory = tool_client_factory
        self._stack_factory = stack_factory
        self._tool_client: Any = None
        self._stack: Optional[Tuple[ResearchAgent, JudgeLoop]] = None
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="research-runtime", daemon=True)
        self._thread.start()
        self.tool_client_starts = 0

    @property
    def closed(self) -> bool:
        return self._loop.is_closed()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Any:
        """Run `coro` on the runtime loop and block until it finishes."""
        if self.closed:
            coro.close()
            raise RuntimeError("Research runtime is closed.")
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def answer(self, prompt: str, session: SessionState, *, judged: bool = False) -> Dict[str, Any]:
        return self.submit(self._answer(prompt, session, judged))

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self._tool_client is not None:
                self.submit(self._tool_client.close())
        finally:
            self._tool_client = None
            self._stack = None
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            self._loop.close()
            logger.info("Research runtime stopped.")

    async def _ensure_stack(self) -> Tuple[ResearchAgent, JudgeLoop]:
        if self._tool_client is None:
            self._tool_client = self._tool_client_factory(self._settings)
        if not getattr(self._tool_client, "connected", True):
            # First use, or the server process exited since the last question.
            await self._tool_client.start()
            self.tool_client_starts += 1
        if self._stack is None:
            self._stack = self._stack_factory(self._tool_client, self._settings)
        return self._stack

    async def _answer(self, prompt: str, session: SessionState, judged: bool) -> Dict[str, Any]:
        research_agent, judge_loop = await self._ensure_stack()
        judge_summary = None
        error = None
        if judged:
            outcome = await judge_loop.run(prompt, session, None)
            session, response = outcome.session, outcome.final_result
            judge_summary = {
                "outcome": outcome.outcome.value,
                "attempts": outcome.attempts_used,
                "evaluations": [evaluation.model_dump(mode="json") for evaluation in outcome.evaluations],
            }
        else:
            research = await research_agent.ainvoke(prompt, session, None)
            session, response, error = research.session, research.result, research.error
        return {
            "response": response,
            "session": session,
            "action_history": research_agent.action_history,
            "judge": judge_summary,
            "error": error,
        }
