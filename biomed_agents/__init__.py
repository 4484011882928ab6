"""
Agents package for the PubTator Research Agents project.

This package groups together the query guardrail, translator, specialists,
quality judge and the orchestration that ties them together.  Build the
whole stack around one tool server connection:

```python
from biomed_agents import MCPServerConfig, MCPStdioToolClient, build_research_stack

async with MCPStdioToolClient(config=MCPServerConfig.pubtator()) as tools:
    research_agent, judge_loop = build_research_stack(tools)
```
"""

from .factory import build_research_stack  # noqa: F401
from .judge_loop import JudgeLoop, JudgeLoopResult, JudgeOutcome  # noqa: F401
from .mcp_client import MCPServerConfig, MCPStdioToolClient  # noqa: F401
from .research_agent import ResearchAgent, ResearchResult  # noqa: F401

__all__ = [
    "JudgeLoop",
    "JudgeLoopResult",
    "JudgeOutcome",
    "MCPServerConfig",
    "MCPStdioToolClient",
    "ResearchAgent",
    "ResearchResult",
    "build_research_stack",
]
