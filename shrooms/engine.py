"""Instruction execution: one prompt, one completion, one validated result."""

import asyncio
import inspect
import logging
import random
from typing import List, Dict, Any, Optional, Callable, Awaitable

from .capabilities import Capabilities, parse_capabilities
from .config import DEFAULT_CARD_COUNT, STUB_IDEAS
from .context import resolve_context_column_ids, resolve_target_column_ids, select_cards
from .models import (
    BoardSnapshot,
    Card,
    CardDraft,
    CompletionNotice,
    DebugInfo,
    ExecutionResult,
    Instruction,
    Member,
    Task,
)
from .parsing import (
    safe_content,
    assignable_ids,
    parse_generate_response,
    parse_modify_response,
    parse_move_response,
    parse_multi_step_response,
)
from .prompts import (
    build_generate_prompt,
    build_modify_prompt,
    build_move_prompt,
    build_multi_step_prompt,
)
from .research import augment_with_web_research

logger = logging.getLogger(__name__)

SIGN_IN_BODY = "Sign in or configure an API key for real AI suggestions."
GENERATION_FAILED_BODY = "AI generation failed. Please try again."
GENERATION_ERROR_BODY = "AI generation encountered an error. Please try again."
MODIFY_ERROR = "AI modification encountered an error. Please try again."
MOVE_ERROR = "AI move analysis encountered an error. Please try again."

# References to in-flight notification tasks so they are not garbage collected
_background_tasks = set()


class ConfigurationError(Exception):
    """No LLM client is available for an action that needs one."""


def _random_ideas(count: int) -> List[str]:
    return random.sample(STUB_IDEAS, min(count, len(STUB_IDEAS)))


def stub_result(
    instruction: Instruction,
    target_column_ids: List[str],
    body: str = SIGN_IN_BODY,
    debug: Optional[DebugInfo] = None,
) -> ExecutionResult:
    """Canned generate result used when real generation is unavailable."""
    count = instruction.card_count or DEFAULT_CARD_COUNT
    return ExecutionResult(
        action="generate",
        target_column_ids=target_column_ids,
        generated_cards=[CardDraft(title=idea, initial_message=body) for idea in _random_ideas(count)],
        debug=debug,
    )


async def _deliver_notice(notify: Callable[[CompletionNotice], Any], notice: CompletionNotice) -> None:
    try:
        outcome = notify(notice)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        logger.warning("Notification for instruction %s failed: %s", notice.instruction_id, e)


def _fire_notice(notify, instruction: Instruction, board: BoardSnapshot, body: str) -> None:
    if notify is None:
        return
    notice = CompletionNotice(
        body=f'"{instruction.title}" {body}',
        board_id=board.id,
        instruction_id=instruction.id,
    )
    task = asyncio.create_task(_deliver_notice(notify, notice))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def _finish(on_success: Optional[Callable[[], Awaitable[Any]]], notify, instruction, board, body) -> None:
    if on_success is not None:
        await on_success()
    _fire_notice(notify, instruction, board, body)


async def _prepare_messages(
    messages: List[Dict[str, str]],
    instruction: Instruction,
    board: BoardSnapshot,
    llm,
    board_name_in_search: bool = False,
) -> List[Dict[str, str]]:
    return await augment_with_web_research(
        messages,
        instruction.instructions_text,
        llm,
        board_name=board.name if board_name_in_search else None,
    )


def _debug_for(messages: List[Dict[str, str]]) -> DebugInfo:
    return DebugInfo(system_prompt=messages[0]["content"], user_prompt=messages[-1]["content"])


async def _complete(llm, messages: List[Dict[str, str]]) -> str:
    response = await llm.complete(messages)
    return safe_content(response) or ""


def _skipped_or_none(skipped: List[str]) -> Optional[List[str]]:
    return skipped or None


async def _run_multi_step(
    instruction: Instruction,
    board: BoardSnapshot,
    cards: Dict[str, Card],
    llm,
    tasks: Optional[Dict[str, Task]],
    members: Optional[List[Member]],
    system_instructions: Optional[str],
    capabilities: Capabilities,
    on_success,
    notify,
) -> ExecutionResult:
    step_column_ids = list(dict.fromkeys(step.target_column_id for step in instruction.steps))
    messages = build_multi_step_prompt(
        instruction, board, cards, tasks, system_instructions, members, capabilities
    )
    messages = await _prepare_messages(messages, instruction, board, llm)
    debug = _debug_for(messages)

    try:
        raw = await _complete(llm, messages)
    except Exception as e:
        logger.error("Multi-step LLM error for instruction %s: %s", instruction.id, e)
        debug.raw_response = f"Error: {e}"
        return ExecutionResult(
            action="multi-step",
            target_column_ids=[],
            error=f"AI error: {e}",
            debug=debug,
        )

    debug.raw_response = raw
    output = parse_multi_step_response(
        raw,
        capabilities,
        column_ids=[column.id for column in board.columns],
        assignable_member_ids=assignable_ids(capabilities, members),
    )

    await _finish(on_success, notify, instruction, board, "completed")

    return ExecutionResult(
        action="multi-step",
        target_column_ids=step_column_ids,
        generated_cards=output.generated_cards or None,
        modified_cards=output.modified_cards or None,
        moved_cards=output.moved_cards or None,
        debug=debug,
    )


async def _run_generate(
    instruction: Instruction,
    board: BoardSnapshot,
    cards: Dict[str, Card],
    llm,
    members: Optional[List[Member]],
    system_instructions: Optional[str],
    capabilities: Capabilities,
    target_column_ids: List[str],
    on_success,
    notify,
) -> ExecutionResult:
    count = instruction.card_count or DEFAULT_CARD_COUNT
    context_column_ids = resolve_context_column_ids(instruction.context_columns, board)
    messages = build_generate_prompt(
        instruction,
        board,
        cards,
        context_column_ids,
        target_column_ids=target_column_ids,
        system_instructions=system_instructions,
        members=members,
        capabilities=capabilities,
    )
    messages = await _prepare_messages(messages, instruction, board, llm, board_name_in_search=True)
    debug = _debug_for(messages)

    try:
        raw = await _complete(llm, messages)
    except Exception as e:
        logger.error("LLM error while generating for instruction %s: %s", instruction.id, e)
        debug.raw_response = f"Error: {e}"
        return stub_result(instruction, target_column_ids, body=GENERATION_ERROR_BODY, debug=debug)

    debug.raw_response = raw
    drafts = parse_generate_response(raw, count, assignable_ids(capabilities, members))
    if not drafts:
        return stub_result(instruction, target_column_ids, body=GENERATION_FAILED_BODY, debug=debug)

    await _finish(on_success, notify, instruction, board, f"generated {len(drafts)} card(s)")

    return ExecutionResult(
        action="generate",
        target_column_ids=target_column_ids,
        generated_cards=drafts,
        debug=debug,
    )


def _nothing_to_do(action: str, target_column_ids: List[str], skipped: List[str], where: str) -> ExecutionResult:
    if skipped:
        message = f"All {len(skipped)} card(s) already processed by this instruction."
    else:
        message = f"No cards found in {where} columns."
    result = ExecutionResult(
        action=action,
        target_column_ids=target_column_ids,
        skipped_card_ids=skipped,
        message=message,
    )
    if action == "modify":
        result.modified_cards = []
    else:
        result.moved_cards = []
    return result


async def _run_modify(
    instruction: Instruction,
    board: BoardSnapshot,
    selected: List[Card],
    skipped: List[str],
    llm,
    tasks: Optional[Dict[str, Task]],
    members: Optional[List[Member]],
    system_instructions: Optional[str],
    capabilities: Capabilities,
    target_column_ids: List[str],
    on_success,
    notify,
) -> ExecutionResult:
    messages = build_modify_prompt(
        instruction, board, selected, tasks, system_instructions, members, capabilities
    )
    messages = await _prepare_messages(messages, instruction, board, llm)
    debug = _debug_for(messages)

    try:
        raw = await _complete(llm, messages)
    except Exception as e:
        logger.error("LLM error while modifying for instruction %s: %s", instruction.id, e)
        debug.raw_response = f"Error: {e}"
        return ExecutionResult(
            action="modify",
            target_column_ids=target_column_ids,
            modified_cards=[],
            skipped_card_ids=_skipped_or_none(skipped),
            error=MODIFY_ERROR,
            debug=debug,
        )

    debug.raw_response = raw
    patches = parse_modify_response(raw, capabilities, assignable_ids(capabilities, members))

    await _finish(on_success, notify, instruction, board, f"modified {len(patches)} card(s)")

    return ExecutionResult(
        action="modify",
        target_column_ids=target_column_ids,
        modified_cards=patches,
        skipped_card_ids=_skipped_or_none(skipped),
        debug=debug,
    )


async def _run_move(
    instruction: Instruction,
    board: BoardSnapshot,
    selected: List[Card],
    skipped: List[str],
    llm,
    system_instructions: Optional[str],
    target_column_ids: List[str],
    on_success,
    notify,
) -> ExecutionResult:
    messages = build_move_prompt(instruction, board, selected, system_instructions)
    messages = await _prepare_messages(messages, instruction, board, llm)
    debug = _debug_for(messages)

    try:
        raw = await _complete(llm, messages)
    except Exception as e:
        logger.error("LLM error while moving for instruction %s: %s", instruction.id, e)
        debug.raw_response = f"Error: {e}"
        return ExecutionResult(
            action="move",
            target_column_ids=target_column_ids,
            moved_cards=[],
            skipped_card_ids=_skipped_or_none(skipped),
            error=MOVE_ERROR,
            debug=debug,
        )

    debug.raw_response = raw
    decisions = parse_move_response(raw, [column.id for column in board.columns])

    await _finish(on_success, notify, instruction, board, f"moved {len(decisions)} card(s)")

    return ExecutionResult(
        action="move",
        target_column_ids=target_column_ids,
        moved_cards=decisions,
        skipped_card_ids=_skipped_or_none(skipped),
        debug=debug,
    )


async def run_instruction(
    instruction: Instruction,
    board: BoardSnapshot,
    cards: Dict[str, Card],
    *,
    llm,
    tasks: Optional[Dict[str, Task]] = None,
    members: Optional[List[Member]] = None,
    system_instructions: Optional[str] = None,
    triggering_card_id: Optional[str] = None,
    skip_already_processed: bool = False,
    on_success: Optional[Callable[[], Awaitable[Any]]] = None,
    notify: Optional[Callable[[CompletionNotice], Any]] = None,
) -> ExecutionResult:
    """
    Execute one instruction against a board snapshot.

    Args:
        llm: Client exposing async complete(messages) and optionally
            async web_search(query, system_prompt); None when unconfigured
        on_success: Awaited once after a successful model call
        notify: Completion hook, run in the background; its failures are only logged

    Raises:
        ConfigurationError: llm is None and the action cannot fall back to canned ideas
    """
    target_column_ids = resolve_target_column_ids(instruction.target, board)

    if llm is None:
        if instruction.action == "generate":
            return stub_result(instruction, target_column_ids)
        raise ConfigurationError("An LLM client is required to run this instruction")

    capabilities = parse_capabilities(instruction.instructions_text)

    if instruction.is_multi_step:
        return await _run_multi_step(
            instruction, board, cards, llm, tasks, members, system_instructions,
            capabilities, on_success, notify,
        )

    if instruction.action == "generate":
        return await _run_generate(
            instruction, board, cards, llm, members, system_instructions,
            capabilities, target_column_ids, on_success, notify,
        )

    selected, skipped = select_cards(
        instruction,
        board,
        cards,
        target_column_ids,
        triggering_card_id=triggering_card_id,
        skip_already_processed=skip_already_processed,
    )

    if instruction.action == "modify":
        if not selected:
            return _nothing_to_do("modify", target_column_ids, skipped, "target")
        return await _run_modify(
            instruction, board, selected, skipped, llm, tasks, members, system_instructions,
            capabilities, target_column_ids, on_success, notify,
        )

    if not selected:
        return _nothing_to_do("move", target_column_ids, skipped, "source")
    return await _run_move(
        instruction, board, selected, skipped, llm, system_instructions,
        target_column_ids, on_success, notify,
    )
