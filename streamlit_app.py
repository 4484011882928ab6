"""
Streamlit entry point for the Biomedical Research Agent.

Provides a chat-style interface on top of `ResearchAgent` and `JudgeLoop`,
persisting the session document between submits and surfacing the most
recent tool activity in sidebar expanders.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

import streamlit as st
from dotenv import load_dotenv

from biomed_agents.runtime import ResearchRuntime
from biomed_agents.settings import Settings
from session_state_manager import SessionStore

# Ensure environment variables from .env are loaded before building settings.
load_dotenv()

LOGGER = logging.getLogger(__name__)


@st.cache_resource(show_spinner=False)
def _get_settings() -> Settings:
    return Settings.from_env()


def _init_session_state() -> None:
    """Initialize keys stored in st.session_state."""
    if "messages" not in st.session_state:
        st.session_state.messages: List[Dict[str, str]] = []
    if "metadata" not in st.session_state:
        st.session_state.metadata = {"action_history": [], "judge": None}


def _get_runtime(settings: Settings) -> ResearchRuntime:
    """One runtime (and tool server process) per browser session, reused across reruns."""
    runtime = st.session_state.get("runtime")
    if runtime is None or runtime.closed:
        runtime = ResearchRuntime(settings)
        st.session_state.runtime = runtime
    return runtime


def _answer(prompt: str, judged: bool, settings: Settings) -> Dict[str, Any]:
    """Run one (optionally judged) pass on the session runtime and persist the session."""
    store = SessionStore(settings.session_file)
    answer = _get_runtime(settings).answer(prompt, store.load(), judged=judged)
    store.save(answer["session"])
    if answer["error"]:
        answer["response"] = f"{answer['response']}\n\n_Research failed: {answer['error']}_"
    return answer


def _render_sidebar(settings: Settings) -> bool:
    """Render sidebar controls and metadata viewers; returns the judge-mode toggle."""
    with st.sidebar:
        st.header("Session Controls")
        judged = st.toggle("Judge mode", value=False, help="Retry with quality feedback until the answer passes.")
        if st.button("Clear session", use_container_width=True):
            SessionStore(settings.session_file).clear()
            st.session_state.messages = []
            st.session_state.metadata = {"action_history": [], "judge": None}
            st.rerun()

        st.divider()
        st.header("Latest Run Details")
        with st.expander("Session document", expanded=False):
            document = SessionStore(settings.session_file).load().to_document()
            st.code(json.dumps(document, indent=2, ensure_ascii=False)[:20000], language="json")

        judge_summary = st.session_state.metadata.get("judge")
        with st.expander("Quality judge", expanded=False):
            if judge_summary:
                st.markdown(f"**{judge_summary['outcome']}** after {judge_summary['attempts']} attempt(s)")
                for evaluation in judge_summary["evaluations"]:
                    st.markdown(f"- `{evaluation['score']}`: {evaluation['feedback']}")
            else:
                st.caption("No judged run yet.")

        actions = st.session_state.metadata.get("action_history", [])
        with st.expander("Tool calls", expanded=False):
            if actions:
                for action in actions:
                    st.markdown(f"**{action.get('tool', 'tool')}**")
                    st.json(action.get("arguments", {}), expanded=False)
                    if action.get("error"):
                        st.error(action["error"])
                    st.markdown("---")
            else:
                st.caption("No tool calls recorded yet.")
    return judged


def main() -> None:
    st.set_page_config(page_title="Biomedical Research Agent", layout="wide")
    st.title("Biomedical Research Agent")
    st.caption(
        "Ask about a PubMed article by PMID, or ask a biomedical question in any language; "
        "answers are grounded in PubTator3 annotations."
    )

    _init_session_state()
    try:
        settings = _get_settings()
    except Exception as exc:  # pragma: no cover - surfaced to UI
        LOGGER.exception("Streamlit failed to load settings: %s", exc)
        st.error(f"Failed to load configuration.\n\nDetails: {exc}")
        return
    judged = _render_sidebar(settings)

    # Replay the chat history.
    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])

    prompt = st.chat_input("Ask about a PMID or a biomedical topic")
    if not prompt:
        return

    st.session_state.messages.append({"role": "user", "content": prompt})
    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        placeholder = st.empty()
        with st.spinner("Researching your question..."):
            try:
                answer = _answer(prompt, judged, settings)
            except Exception as exc:  # pragma: no cover - surfaced to UI
                LOGGER.exception("Agent invocation failed: %s", exc)
                answer = {
                    "response": f"An error occurred while researching your question:\n\n{exc}",
                    "action_history": [],
                    "judge": None,
                }
        placeholder.markdown(answer["response"])

    st.session_state.messages.append({"role": "assistant", "content": answer["response"]})
    st.session_state.metadata["action_history"] = answer["action_history"]
    st.session_state.metadata["judge"] = answer["judge"]


if __name__ == "__main__":
    main()
