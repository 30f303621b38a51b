"""Parsing of untrusted model output into validated result records.

Every parser here returns an empty result instead of raising. Malformed items
are dropped, unknown fields ignored, and field categories the instruction did
not enable are stripped.
"""

import json
import logging
import re
from typing import List, Dict, Any, Optional, Iterable

from .capabilities import Capabilities
from .models import (
    CardDraft,
    CardPatch,
    CardProperty,
    MoveDecision,
    MultiStepOutput,
    TaskDraft,
)

logger = logging.getLogger(__name__)

_CLOSERS = {"{": "}", "[": "]"}
# bracket positions tried before giving up on a reply
_MAX_CANDIDATES = 20


def _strip_code_fence(text: str) -> str:
    if not text:
        return ""
    fence_match = re.match(r"^```[a-zA-Z0-9_-]*\n(.+?)\n```$", text.strip(), re.S)
    if fence_match:
        return fence_match.group(1).strip()
    return text.strip()


def safe_content(response: Optional[Dict[str, Any]]) -> Optional[str]:
    if not response or not isinstance(response, dict):
        return None
    content = response.get("content")
    if not content or not isinstance(content, str):
        return None
    return content


def _loads_lenient(payload: str) -> Any:
    """json.loads, retrying once with trailing commas removed."""
    for candidate in (payload, re.sub(r",\s*([\]}])", r"\1", payload)):
        try:
            return json.loads(candidate)
        except (ValueError, RecursionError):
            # JSONDecodeError, oversized integers and runaway nesting
            continue
    return None


def _balanced_span(text: str, start: int) -> Optional[str]:
    """The bracketed value opening at text[start], honoring string literals."""
    opener = text[start]
    closer = _CLOSERS[opener]
    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
            continue
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start:idx + 1]
    return None


def _extract_json(text: str, opener: str, expected_type: type) -> Any:
    if not text:
        return None
    text = _strip_code_fence(text)

    whole = _loads_lenient(text)
    if isinstance(whole, expected_type):
        return whole

    position = text.find(opener)
    for _ in range(_MAX_CANDIDATES):
        if position == -1:
            break
        span = _balanced_span(text, position)
        if span is not None:
            parsed = _loads_lenient(span)
            if isinstance(parsed, expected_type):
                return parsed
        position = text.find(opener, position + 1)
    return None


def extract_json_array(text: str) -> Optional[List[Any]]:
    return _extract_json(text, "[", list)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    return _extract_json(text, "{", dict)


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------

def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, str)]


def _optional_text(value: Any) -> Optional[str]:
    return value.strip() if isinstance(value, str) else None


def _assigned_to(value: Any, assignable_member_ids: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Member ids from the roster only; None when assignment is not in play."""
    if assignable_member_ids is None:
        return None
    ids = _string_list(value)
    if ids is None:
        return None
    allowed = set(assignable_member_ids)
    return [member_id for member_id in ids if member_id in allowed]


def _tags(value: Any) -> Optional[List[str]]:
    tags = _string_list(value)
    if tags is None:
        return None
    return [tag.strip() for tag in tags if tag.strip()]


def _properties(value: Any) -> Optional[List[CardProperty]]:
    if not isinstance(value, list):
        return None
    properties = []
    for item in value:
        if not isinstance(item, dict):
            continue
        if not isinstance(item.get("key"), str) or not isinstance(item.get("value"), str):
            continue
        properties.append(CardProperty(
            key=item["key"],
            value=item["value"],
            display_type="field" if item.get("displayType") == "field" else "chip",
            color=item.get("color") if isinstance(item.get("color"), str) else None,
        ))
    return properties


def _tasks(value: Any, assignable_member_ids: Optional[Iterable[str]]) -> Optional[List[TaskDraft]]:
    if not isinstance(value, list):
        return None
    tasks = []
    for item in value:
        if not isinstance(item, dict) or not isinstance(item.get("title"), str):
            continue
        tasks.append(TaskDraft(
            title=item["title"].strip(),
            description=_optional_text(item.get("description")),
            assigned_to=_assigned_to(item.get("assignedTo"), assignable_member_ids),
        ))
    return tasks


# ---------------------------------------------------------------------------
# Item parsers
# ---------------------------------------------------------------------------

def _card_draft(
    item: Any,
    assignable_member_ids: Optional[Iterable[str]],
    column_ids: Optional[Iterable[str]] = None,
) -> Optional[CardDraft]:
    if not isinstance(item, dict) or not isinstance(item.get("title"), str):
        return None
    target_column_id = None
    requested = item.get("targetColumnId")
    if column_ids is not None and isinstance(requested, str) and requested in set(column_ids):
        target_column_id = requested
    return CardDraft(
        title=item["title"].strip(),
        initial_message=_optional_text(item.get("content")),
        assigned_to=_assigned_to(item.get("assignedTo"), assignable_member_ids),
        target_column_id=target_column_id,
    )


def _card_patch(
    item: Any,
    capabilities: Capabilities,
    assignable_member_ids: Optional[Iterable[str]],
) -> Optional[CardPatch]:
    if not isinstance(item, dict):
        return None
    if not isinstance(item.get("id"), str) or not isinstance(item.get("title"), str):
        return None
    return CardPatch(
        id=item["id"],
        title=item["title"].strip(),
        content=_optional_text(item.get("content")),
        tags=_tags(item.get("tags")) if capabilities.allow_tags else None,
        properties=_properties(item.get("properties")) if capabilities.allow_properties else None,
        tasks=_tasks(item.get("tasks"), assignable_member_ids) if capabilities.allow_tasks else None,
        assigned_to=_assigned_to(item.get("assignedTo"), assignable_member_ids),
    )


def _move_decision(item: Any, column_ids: Optional[Iterable[str]]) -> Optional[MoveDecision]:
    if not isinstance(item, dict):
        return None
    card_id = item.get("cardId")
    destination = item.get("destinationColumnId")
    if not isinstance(card_id, str) or not isinstance(destination, str):
        return None
    if column_ids is not None and destination not in set(column_ids):
        logger.warning("Dropping move of %s to unknown column %s", card_id, destination)
        return None
    return MoveDecision(
        card_id=card_id,
        destination_column_id=destination,
        reason=item.get("reason") if isinstance(item.get("reason"), str) else None,
    )


def _collect(items: Any, build) -> list:
    if not isinstance(items, list):
        return []
    return [record for record in (build(item) for item in items) if record is not None]


def assignable_ids(capabilities: Capabilities, members) -> Optional[List[str]]:
    """Member ids eligible for assignedTo, or None when assignment is disabled."""
    if not capabilities.assignment_enabled(members):
        return None
    return [member.id for member in members]


# ---------------------------------------------------------------------------
# Response parsers
# ---------------------------------------------------------------------------

def parse_generate_response(
    text: str,
    card_count: int,
    assignable_member_ids: Optional[Iterable[str]] = None,
) -> List[CardDraft]:
    parsed = extract_json_array(text)
    if parsed is None:
        logger.warning("No JSON array found in generate response")
        return []
    drafts = _collect(parsed, lambda item: _card_draft(item, assignable_member_ids))
    return drafts[:card_count]


def parse_modify_response(
    text: str,
    capabilities: Capabilities,
    assignable_member_ids: Optional[Iterable[str]] = None,
) -> List[CardPatch]:
    parsed = extract_json_array(text)
    if parsed is None:
        logger.warning("No JSON array found in modify response")
        return []
    return _collect(parsed, lambda item: _card_patch(item, capabilities, assignable_member_ids))


def parse_move_response(text: str, column_ids: Optional[Iterable[str]] = None) -> List[MoveDecision]:
    parsed = extract_json_array(text)
    if parsed is None:
        logger.warning("No JSON array found in move response")
        return []
    known = list(column_ids) if column_ids is not None else None
    return _collect(parsed, lambda item: _move_decision(item, known))


def parse_multi_step_response(
    text: str,
    capabilities: Capabilities,
    column_ids: Optional[Iterable[str]] = None,
    assignable_member_ids: Optional[Iterable[str]] = None,
) -> MultiStepOutput:
    parsed = extract_json_object(text)
    if parsed is None:
        logger.warning("No JSON object found in multi-step response")
        return MultiStepOutput()

    known = list(column_ids) if column_ids is not None else None
    return MultiStepOutput(
        generated_cards=_collect(
            parsed.get("generatedCards"),
            lambda item: _card_draft(item, assignable_member_ids, known),
        ),
        modified_cards=_collect(
            parsed.get("modifiedCards"),
            lambda item: _card_patch(item, capabilities, assignable_member_ids),
        ),
        moved_cards=_collect(parsed.get("movedCards"), lambda item: _move_decision(item, known)),
    )
