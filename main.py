"""
Command line interface for the Biomedical Research Agent.

Loads API keys from environment variables (via `.env`), starts one shared
PubTator3 tool server, restores the session from disk and enters an
interactive loop:

  <query>          run one research pass
  --judge <query>  run the research pass under the quality judge
  memory           print the session document
  clear            delete the session document and start fresh
  exit             quit
"""

import asyncio
import json
import logging
import os
import threading
from typing import Optional, Tuple

from autogen_core import CancellationToken
from dotenv import load_dotenv

from biomed_agents import MCPServerConfig, MCPStdioToolClient, build_research_stack
from biomed_agents.settings import Settings
from session_state_manager import SessionStore

# --- Logging configuration ---
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

JUDGE_FLAG = "--judge"
JUDGE_USAGE = "Usage: --judge <query>"


def parse_command(line: str) -> Tuple[str, str]:
    """Split one input line into a command name and its query text."""
    text = line.strip()
    command = text.lower()
    if command in {"exit", "quit", "q"}:
        return "exit", ""
    if command in {"memory", "clear"}:
        return command, ""
    parts = text.split(maxsplit=1)
    if parts and parts[0].lower() == JUDGE_FLAG:
        return "judge", parts[1].strip() if len(parts) > 1 else ""
    return "research", text


async def _prompt(text: str) -> str:
    """Read one line on a daemon thread so Ctrl+C never waits on a blocked input()."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def deliver(line: Optional[str], error: Optional[BaseException]) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line)

    def read() -> None:
        try:
            line = input(text)
        except (EOFError, OSError) as exc:
            loop.call_soon_threadsafe(deliver, None, exc)
            return
        loop.call_soon_threadsafe(deliver, line, None)

    threading.Thread(target=read, name="cli-input", daemon=True).start()
    return await future


async def _repl(settings: Settings) -> None:
    store = SessionStore(settings.session_file)
    session = store.load()

    logger.info("Initializing shared PubTator3 tool server...")
    config = MCPServerConfig.pubtator(settings.tool_server_command)
    async with MCPStdioToolClient(config=config) as tool_client:
        research_agent, judge_loop = build_research_stack(tool_client, settings)
        print(
            "\nWelcome to the Biomedical Research Agent!\n"
            "Commands: --judge <query>, memory, clear, exit\n"
        )

        while True:
            try:
                query = (await _prompt("> ")).strip()
            except EOFError:
                logger.info("EOF received; exiting.")
                break

            if not query:
                continue
            command, text = parse_command(query)
            if command == "exit":
                logger.info("User requested exit.")
                break
            if command == "memory":
                print(json.dumps(session.to_document(), indent=2, ensure_ascii=False))
                continue
            if command == "clear":
                session = store.clear()
                print(f"Started new session {session.conversation_id}.\n")
                continue

            if command == "judge" and not text:
                print(f"{JUDGE_USAGE}\n")
                continue

            token = CancellationToken()
            try:
                if command == "judge":
                    logger.info("Processing judged query: %s", text)
                    outcome = await judge_loop.run(text, session, token)
                    session = outcome.session
                    print(
                        f"\nJudged Research Result ({outcome.outcome.value}, "
                        f"{outcome.attempts_used} attempt(s)):\n\n{outcome.final_result}\n"
                    )
                else:
                    logger.info("Processing query: %s", query)
                    research = await research_agent.ainvoke(text, session, token)
                    session = research.session
                    if research.error:
                        print(f"\nResearch failed: {research.error}")
                    print(f"\n{research.result}\n")
                logger.info("Response delivered successfully.")
            except asyncio.CancelledError:
                token.cancel()
                store.save(session)
                raise
            except Exception as exc:
                logger.exception("Error while processing query: %s", exc)
                print(f"An error occurred: {exc}\n")
                continue

            store.save(session)


def main() -> None:
    """Run the command line loop for the research agent."""
    logger.info("Loading environment variables from .env file...")
    load_dotenv()
    settings = Settings.from_env()

    try:
        asyncio.run(_repl(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted; in-flight query cancelled.")
    except Exception as exc:
        logger.exception("Failed to run the research agent: %s", exc)
        return

    logger.info("Session ended. Goodbye!")
    print("Goodbye!")


if __name__ == "__main__":
    main()
