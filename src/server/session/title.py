from __future__ import annotations

import logging
from typing import Iterable, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

from src.llms.llm import get_utility_llm

from .models import DEFAULT_SESSION_TITLE, MessageRecord
from .store import SQLiteSessionStore

logger = logging.getLogger(__name__)

_MAX_TITLE_LENGTH = 60


async def ensure_session_title(
    store: SQLiteSessionStore,
    session_id: str,
    llm: Optional[BaseChatModel] = None,
) -> Optional[str]:
    """Generate and persist a title while the session still has the placeholder."""
    if await store.session_has_title(session_id):
        return None

    messages = await store.get_first_exchange(session_id)
    first_user = next((m for m in messages if m.role == "user" and m.content.strip()), None)
    if first_user is None:
        logger.debug("Session %s has no user message yet; skipping title generation", session_id)
        return None

    fallback = _derive_fallback_title(messages)

    if llm is None:
        try:
            llm = get_utility_llm()
        except Exception as exc:  # noqa: BLE001
            logger.warning("LLM unavailable for session title generation: %s", exc)
            await store.update_session_title(session_id, fallback)
            return fallback

    try:
        ai_message = await llm.ainvoke([HumanMessage(content=_build_prompt(first_user))])
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to generate session title via LLM: %s", exc)
        await store.update_session_title(session_id, fallback)
        return fallback

    title = ai_message.content if isinstance(ai_message.content, str) else ""
    title = _truncate_to_limit(title.strip().strip('"').strip()) if title.strip() else fallback
    await store.update_session_title(session_id, title)
    return title


def _build_prompt(message: MessageRecord) -> str:
    return (
        "Summarize the following question/statement in 5 words or fewer, "
        "return only the short title with no punctuation:\n\n"
        f"{message.content}"
    )


def _derive_fallback_title(messages: Iterable[MessageRecord]) -> str:
    for message in messages:
        if message.role == "user" and message.content.strip():
            return _truncate_to_limit(message.content)
    return DEFAULT_SESSION_TITLE


def _truncate_to_limit(text: str) -> str:
    cleaned = " ".join(text.split())
    if len(cleaned) <= _MAX_TITLE_LENGTH:
        return cleaned or DEFAULT_SESSION_TITLE
    trimmed = cleaned[: _MAX_TITLE_LENGTH - 1].rstrip()
    return f"{trimmed}…"
