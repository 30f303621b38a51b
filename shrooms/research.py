"""Optional web research step run before the main completion."""

import logging
import re
from typing import List, Dict, Optional

from .config import SEARCH_QUERY_MAX_CHARS

logger = logging.getLogger(__name__)

WEB_SEARCH_KEYWORDS = (
    "youtube", "video", "link", "url", "website", "webpage",
    "search for", "find online", "look up", "browse",
    "article", "blog post", "podcast", "episode",
    "reddit", "twitter", "github", "stack overflow",
    "http", "www", ".com", ".org", ".io",
)

WEB_RESEARCH_HEADER = (
    "## Web Research (real data from the internet)\n"
    "IMPORTANT: Use ONLY the real URLs below. Do NOT invent or hallucinate any URLs, never fabricate links."
)


def detect_web_search_intent(instruction_text: str) -> bool:
    if not instruction_text:
        return False
    lowered = instruction_text.lower()
    return any(keyword in lowered for keyword in WEB_SEARCH_KEYWORDS)


def build_search_query(instruction_text: str) -> str:
    collapsed = re.sub(r"\s+", " ", instruction_text or "").strip()
    return collapsed[:SEARCH_QUERY_MAX_CHARS]


def build_search_system_prompt(board_name: Optional[str] = None) -> str:
    prompt = "Search the web and return detailed, factual information including real URLs."
    if board_name:
        prompt += f' The user needs real links and data for a Kanban board called "{board_name}".'
    return prompt + " Return specific URLs, titles, and descriptions."


async def augment_with_web_research(
    messages: List[Dict[str, str]],
    instruction_text: str,
    llm,
    board_name: Optional[str] = None,
) -> List[Dict[str, str]]:
    """
    Append live search results to the final user message when the instruction asks for web data.

    Returns a new message list; the input is left untouched. Search failures are
    logged and the original messages are returned so the run continues without them.
    """
    if not detect_web_search_intent(instruction_text):
        return messages
    web_search = getattr(llm, "web_search", None)
    if web_search is None:
        return messages

    query = build_search_query(instruction_text)
    try:
        result = await web_search(query, build_search_system_prompt(board_name))
    except Exception as e:
        logger.warning("Web search failed, proceeding without: %s", e)
        return messages

    content = (result or {}).get("content")
    if not content or not isinstance(content, str):
        logger.warning("Web search returned no content for query %r", query)
        return messages

    augmented = [dict(message) for message in messages]
    augmented[-1]["content"] = f"{augmented[-1]['content']}\n\n{WEB_RESEARCH_HEADER}\n\n{content}"
    return augmented
