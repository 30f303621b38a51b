"""Prompt construction for generate, modify, move and unified multi-step runs."""

from typing import List, Dict, Optional, Tuple

from .capabilities import Capabilities, parse_capabilities
from .config import DEFAULT_CARD_COUNT
from .context import step_source_column_ids
from .feedback import build_feedback_context
from .models import BoardSnapshot, Card, Instruction, Member, Task

TASK_STATUS_MARKERS = {
    "done": "[x]",
    "in_progress": "[-]",
}

NO_FABRICATED_URLS_RULE = (
    "If web research data is provided, use ONLY real URLs from that data. "
    "NEVER fabricate or guess URLs"
)


class PromptSections:
    """Named sections joined once, in insertion order, with blank lines between them."""

    def __init__(self):
        self._sections: List[Tuple[str, str]] = []

    def add(self, name: str, text: Optional[str]) -> "PromptSections":
        if text and text.strip():
            self._sections.append((name, text.strip()))
        return self

    def names(self) -> List[str]:
        return [name for name, _ in self._sections]

    def render(self) -> str:
        return "\n\n".join(text for _, text in self._sections)


def _messages(system_prompt: str, sections: PromptSections) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": sections.render()},
    ]


def _context_section(
    board: BoardSnapshot,
    system_instructions: Optional[str],
    include_description: bool = True,
    extra: str = "",
) -> str:
    text = f"## Context\nChannel: {board.name}"
    if include_description and board.description:
        text += f"\n{board.description}"
    if system_instructions and system_instructions.strip():
        text += f"\n\nGeneral guidance:\n{system_instructions.strip()}"
    return text + extra


def _columns_list(board: BoardSnapshot) -> str:
    lines = []
    for column in board.columns:
        line = f'- "{column.name}" (ID: {column.id})'
        if column.instructions:
            line += f"\n  Rules: {column.instructions}"
        lines.append(line)
    return "\n".join(lines)


def _task_lines(card: Card, tasks: Optional[Dict[str, Task]]) -> List[str]:
    card_tasks = [tasks[task_id] for task_id in card.task_ids if tasks and task_id in tasks]
    return [f"  {TASK_STATUS_MARKERS.get(task.status, '[ ]')} {task.title}" for task in card_tasks]


def _instruction_text(instruction: Instruction) -> str:
    return (instruction.instructions_text or "").strip()


def build_members_context(members: Optional[List[Member]]) -> str:
    if not members:
        return ""
    lines = []
    for member in members:
        line = f'- **{member.name}** (ID: "{member.id}")'
        if member.role:
            line += f" - Role: {member.role}"
        if member.role_description:
            line += f"\n  Context: {member.role_description}"
        lines.append(line)
    return "## Channel Members\n" + "\n".join(lines)


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------

def _target_column_info(board: BoardSnapshot, target_column_ids: Optional[List[str]]) -> str:
    if not target_column_ids or len(target_column_ids) != 1:
        return ""
    column = board.column_by_id(target_column_ids[0])
    if column is None:
        return ""
    info = f'\n\nTarget Column: "{column.name}"'
    if column.instructions:
        info += f"\nColumn Rules (cards generated MUST fit these criteria):\n{column.instructions}"
    return info


def _board_state(board: BoardSnapshot, cards: Dict[str, Card], context_column_ids: List[str]) -> str:
    text = "## Current Board"
    for column in board.columns:
        if column.id not in context_column_ids:
            continue
        text += f"\n\n### {column.name}"
        column_cards = [cards[card_id] for card_id in column.card_ids if card_id in cards]
        if not column_cards:
            text += "\n(empty)"
            continue
        for card in column_cards:
            text += f"\n- {card.title}"
            if card.summary:
                text += f": {card.summary[:150]}"
            elif card.messages:
                text += f": {card.messages[0].content[:150]}"
    return text


def build_generate_prompt(
    instruction: Instruction,
    board: BoardSnapshot,
    cards: Dict[str, Card],
    context_column_ids: List[str],
    target_column_ids: Optional[List[str]] = None,
    system_instructions: Optional[str] = None,
    members: Optional[List[Member]] = None,
    capabilities: Optional[Capabilities] = None,
) -> List[Dict[str, str]]:
    capabilities = capabilities or parse_capabilities(instruction.instructions_text)
    assignment = capabilities.assignment_enabled(members)
    count = instruction.card_count or DEFAULT_CARD_COUNT
    target_info = _target_column_info(board, target_column_ids)

    assigned_field = ', "assignedTo": ["user-id"]' if assignment else ""
    assignment_note = (
        '\n- "assignedTo": optional array of member IDs to assign this card to '
        "(use IDs from the Channel Members list)"
        if assignment else ""
    )
    column_rule_note = "\n- IMPORTANT: All generated cards must fit the target column rules" if target_info else ""

    system_prompt = f"""Generate {count} cards as a JSON array.

Each card has:
- "title": concise (1-8 words)
- "content": detailed markdown-formatted content (2-4 paragraphs minimum){assignment_note}

Content Guidelines:
- Write substantively - explain each idea thoroughly
- Use markdown: **bold**, *italics*, bullet lists, numbered lists, headers (##)
- Include context, rationale, implications, or examples as appropriate
- Aim for 150-400 words per card - depth matters for planning/brainstorming
- Each card should stand alone as a complete thought
- {NO_FABRICATED_URLS_RULE}{column_rule_note}

Respond with ONLY the JSON array:
[{{"title": "Card Title", "content": "## Overview\\n\\nDetailed explanation..."{assigned_field}}}]"""

    sections = PromptSections()
    sections.add("context", _context_section(board, system_instructions, extra=target_info))
    sections.add("board", _board_state(board, cards, context_column_ids))

    feedback = build_feedback_context(board, cards)
    if feedback:
        sections.add(
            "feedback",
            f"## Learning from User Behavior\n{feedback}\n\nUse this feedback to generate more relevant cards.",
        )
    if assignment:
        sections.add("members", build_members_context(members))

    task = f"## Your Task\nGenerate {count} new cards."
    if _instruction_text(instruction):
        task += f"\n\n**Instructions:**\n{_instruction_text(instruction)}"
    sections.add("instruction", task)

    return _messages(system_prompt, sections)


# ---------------------------------------------------------------------------
# Modify
# ---------------------------------------------------------------------------

def build_modify_schema(capabilities: Capabilities, assignment_available: bool) -> str:
    """JSON example of one modified card, listing only the enabled fields."""
    assignment = capabilities.allow_assignment and assignment_available
    fields = [
        '"id": "original-card-id"',
        '"title": "Updated Title"',
        '"content": "Optional updated content in markdown"',
    ]
    if capabilities.allow_tags:
        fields.append('"tags": ["TagName1", "TagName2"]')
    if capabilities.allow_properties:
        fields.append(
            '"properties": [\n    { "key": "category", "value": "Example", "displayType": "chip", "color": "blue" }\n  ]'
        )
    if capabilities.allow_tasks:
        task_assigned = ', "assignedTo": ["user-id"]' if assignment else ""
        fields.append(
            '"tasks": [\n    { "title": "Action item extracted from content", '
            f'"description": "Optional details"{task_assigned} }}\n  ]'
        )
    if assignment:
        fields.append('"assignedTo": ["user-id"]')
    return "[{\n  " + ",\n  ".join(fields) + "\n}]"


def _capability_explanations(capabilities: Capabilities, board: BoardSnapshot, assignment: bool) -> List[str]:
    explanations = []
    if capabilities.allow_tags:
        text = (
            "Tags: Use them to categorize or label cards.\n"
            "- Provide an array of tag names to add to the card\n"
            "- IMPORTANT: Check the existing tags list below and use matching names when applicable "
            "(case-insensitive match is OK)\n"
            "- If a tag doesn't exist, provide the exact name you want - it will be created automatically"
        )
        existing = [tag.name for tag in board.tag_definitions]
        if existing:
            text += f"\n- Existing tags in this channel: {', '.join(existing)}"
        explanations.append(text)
    if capabilities.allow_properties:
        explanations.append(
            "Properties: Use them for key-value metadata (not simple tags).\n"
            '- displayType: "chip" for categorical values (shown as colored badges) or "field" for key-value pairs\n'
            "- color options: red, orange, yellow, green, blue, purple, pink, gray"
        )
    if capabilities.allow_tasks:
        explanations.append(
            "Tasks: Use them to extract action items from the card content.\n"
            "- Only create NEW tasks - don't duplicate existing tasks shown in the card context\n"
            "- Tasks should be concrete, actionable items"
        )
    if assignment:
        explanations.append(
            "Assignment: You can assign channel members to cards and tasks.\n"
            '- Use the "assignedTo" field with an array of member IDs from the Channel Members list\n'
            "- Choose members based on their role descriptions and expertise\n"
            "- Only assign members whose skills match the card/task content"
        )
    return explanations


def build_modify_prompt(
    instruction: Instruction,
    board: BoardSnapshot,
    cards_to_modify: List[Card],
    tasks: Optional[Dict[str, Task]] = None,
    system_instructions: Optional[str] = None,
    members: Optional[List[Member]] = None,
    capabilities: Optional[Capabilities] = None,
) -> List[Dict[str, str]]:
    capabilities = capabilities or parse_capabilities(instruction.instructions_text)
    assignment_available = bool(members)
    assignment = capabilities.assignment_enabled(members)

    preamble = ""
    explanations = _capability_explanations(capabilities, board, assignment)
    if explanations:
        preamble += "\n\n".join(explanations) + "\n\n"
    restrictions = capabilities.restrictions(assignment_available)
    if restrictions:
        preamble += "IMPORTANT: " + " ".join(restrictions) + "\n\n"

    system_prompt = f"""You are modifying existing cards based on instructions.

For each card, analyze its content and apply the requested modifications.

Respond with a JSON array of modified cards, maintaining the original card ID:
{build_modify_schema(capabilities, assignment_available)}

{preamble}Only include cards that have actual changes. If a card doesn't need modification, omit it."""

    cards_text = "## Cards to Modify"
    for card in cards_to_modify:
        content = card.message_text() if card.messages else "(no content)"
        cards_text += f"\n\n### Card ID: {card.id}"
        cards_text += f"\n**Title:** {card.title}"
        cards_text += f"\n**Content:**\n{content}"
        if capabilities.allow_tasks:
            task_lines = _task_lines(card, tasks)
            if task_lines:
                cards_text += "\n**Existing Tasks:**\n" + "\n".join(task_lines)

    sections = PromptSections()
    sections.add("context", _context_section(board, system_instructions, include_description=False))
    sections.add("cards", cards_text)
    if assignment:
        sections.add("members", build_members_context(members))

    task = "## Your Task\nModify the cards according to these instructions:"
    if _instruction_text(instruction):
        task += f"\n\n{_instruction_text(instruction)}"
    sections.add("instruction", task)

    return _messages(system_prompt, sections)


# ---------------------------------------------------------------------------
# Move
# ---------------------------------------------------------------------------

def build_move_prompt(
    instruction: Instruction,
    board: BoardSnapshot,
    cards_to_move: List[Card],
    system_instructions: Optional[str] = None,
) -> List[Dict[str, str]]:
    system_prompt = f"""You are analyzing cards to determine which column they should be moved to.

Available columns and their rules:
{_columns_list(board)}

For each card, decide if it should be moved to a different column based on the user's criteria AND the column rules.

Respond with a JSON array of move decisions:
[{{"cardId": "card-id-here", "destinationColumnId": "column-id-here", "reason": "brief explanation"}}]

Only include cards that SHOULD be moved. If a card should stay in its current column, omit it from the response.
If no cards should be moved, return an empty array: []"""

    cards_text = "## Cards to Analyze"
    for card in cards_to_move:
        current = board.column_for_card(card.id)
        cards_text += f"\n\n### Card ID: {card.id}"
        cards_text += f"\n**Current Column:** {current.name if current else 'Unknown'}"
        cards_text += f"\n**Title:** {card.title}"
        if card.summary:
            cards_text += f"\n**Summary:** {card.summary}"
        elif card.messages:
            excerpt = card.message_text(" ")[:300]
            suffix = "..." if len(excerpt) >= 300 else ""
            cards_text += f"\n**Content:** {excerpt}{suffix}"

    sections = PromptSections()
    sections.add("context", _context_section(board, system_instructions, include_description=False))
    sections.add("cards", cards_text)

    task = "## Move Criteria\nAnalyze each card and determine if it should be moved based on these criteria:"
    if _instruction_text(instruction):
        task += f"\n\n{_instruction_text(instruction)}"
    sections.add("instruction", task)

    return _messages(system_prompt, sections)


# ---------------------------------------------------------------------------
# Multi-step
# ---------------------------------------------------------------------------

def _multi_step_response_fields(
    instruction: Instruction,
    capabilities: Capabilities,
    assignment: bool,
) -> List[str]:
    steps = instruction.steps or []
    actions = {step.action for step in steps}
    assigned = ', "assignedTo": ["user-id"]' if assignment else ""
    fields = []

    if "generate" in actions:
        generate_step = next(step for step in steps if step.action == "generate")
        count = generate_step.card_count or instruction.card_count or DEFAULT_CARD_COUNT
        fields.append(
            '"generatedCards": [{"title": "Card Title", "content": "Detailed markdown content", '
            f'"targetColumnId": "column-id-where-card-goes"{assigned}}}]  // Generate {count} cards'
        )

    if "modify" in actions:
        modify_fields = [
            '"id": "original-card-id"',
            '"title": "Updated Title"',
            '"content": "Updated content in markdown"',
        ]
        if capabilities.allow_tags:
            modify_fields.append('"tags": ["TagName"]')
        if capabilities.allow_properties:
            modify_fields.append(
                '"properties": [{"key": "category", "value": "Example", "displayType": "chip", "color": "blue"}]'
            )
        if capabilities.allow_tasks:
            modify_fields.append(f'"tasks": [{{"title": "Action item", "description": "Details"{assigned}}}]')
        if assignment:
            modify_fields.append('"assignedTo": ["user-id"]')
        fields.append('"modifiedCards": [{' + ", ".join(modify_fields) + "}]  // Cards you modified")

    if "move" in actions:
        fields.append(
            '"movedCards": [{"cardId": "card-id", "destinationColumnId": "column-id", '
            '"reason": "brief explanation"}]  // Cards to move'
        )
    return fields


def build_multi_step_prompt(
    instruction: Instruction,
    board: BoardSnapshot,
    cards: Dict[str, Card],
    tasks: Optional[Dict[str, Task]] = None,
    system_instructions: Optional[str] = None,
    members: Optional[List[Member]] = None,
    capabilities: Optional[Capabilities] = None,
) -> List[Dict[str, str]]:
    """
    One prompt covering every step, answered by a single JSON object.

    The same card may legitimately appear in both modifiedCards and movedCards.
    """
    capabilities = capabilities or parse_capabilities(instruction.instructions_text)
    assignment = capabilities.assignment_enabled(members)
    actions = {step.action for step in instruction.steps or []}

    rules = [
        "- Perform the actions described in the instructions IN ORDER, but return everything in a single response",
        '- If a step says "select the best card" and then "modify it" and then "move it", '
        "the SAME card must appear in both modifiedCards and movedCards",
        "- For modifiedCards: only include cards that have actual changes. Use the original card ID.",
        "- For movedCards: only include cards that should actually move. "
        "Use the column ID (not name) for destinationColumnId.",
        "- For generatedCards: include the targetColumnId for where each card should go.",
        f"- {NO_FABRICATED_URLS_RULE}",
    ]
    if "modify" in actions:
        rules.append("- Content in modifiedCards will be added as a new note/message on the card")
    rules.extend(f"- {line}" for line in capabilities.restrictions(bool(members)))
    if assignment:
        rules.append("- You may assign channel members using their IDs from the members list.")

    response_fields = ",\n  ".join(_multi_step_response_fields(instruction, capabilities, assignment))
    rules_text = "\n".join(rules)

    system_prompt = f"""You are performing a multi-step operation on a Kanban board. You will analyze cards and perform ALL requested actions in ONE response.

Available columns:
{_columns_list(board)}

IMPORTANT: You must respond with a single JSON object containing the results of ALL actions:
{{
  {response_fields}
}}

Rules:
{rules_text}

Respond with ONLY the JSON object, no other text."""

    cards_text = "## Cards to Work With"
    for column_id in step_source_column_ids(instruction):
        column = board.column_by_id(column_id)
        if column is None:
            continue
        cards_text += f'\n\n### Column: "{column.name}" (ID: {column.id})'
        column_cards = [cards[card_id] for card_id in column.card_ids if card_id in cards]
        if not column_cards:
            cards_text += "\n(empty)"
            continue
        for card in column_cards:
            cards_text += f"\n\n**Card ID: {card.id}**"
            cards_text += f"\n- Title: {card.title}"
            if card.summary:
                cards_text += f"\n- Summary: {card.summary}"
            elif card.messages:
                cards_text += f"\n- Content: {card.message_text()[:500]}"
            if capabilities.allow_tasks:
                task_lines = _task_lines(card, tasks)
                if task_lines:
                    cards_text += "\n- Existing Tasks:\n" + "\n".join(task_lines)

    sections = PromptSections()
    sections.add("context", _context_section(board, system_instructions))
    sections.add("cards", cards_text)
    if assignment:
        sections.add("members", build_members_context(members))

    task = "## Your Task\nPerform the following operations:"
    if _instruction_text(instruction):
        task += f"\n\n{_instruction_text(instruction)}"
    if instruction.steps:
        task += "\n\nExpected actions:"
        for index, step in enumerate(instruction.steps, start=1):
            column = board.column_by_id(step.target_column_id)
            column_name = column.name if column else "Unknown"
            task += f'\n{index}. {step.action.upper()}: {step.description} (source column: "{column_name}")'
    sections.add("instruction", task)

    return _messages(system_prompt, sections)
