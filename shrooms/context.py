"""Resolve declarative target/context selectors onto concrete columns and cards."""

from typing import List, Dict, Optional, Tuple

from .models import (
    BoardSnapshot,
    Card,
    Instruction,
    ColumnTarget,
    ColumnsTarget,
    SelectedContextColumns,
)


def resolve_target_column_ids(target, board: BoardSnapshot) -> List[str]:
    """Columns where the action's effect lands."""
    if isinstance(target, ColumnTarget):
        return [target.column_id]
    if isinstance(target, ColumnsTarget):
        return list(target.column_ids)
    return [column.id for column in board.columns]


def resolve_context_column_ids(context_columns, board: BoardSnapshot) -> List[str]:
    """Columns whose cards the model sees. Absent or 'all' means every column."""
    if isinstance(context_columns, SelectedContextColumns):
        return list(context_columns.column_ids)
    return [column.id for column in board.columns]


def step_source_column_ids(instruction: Instruction) -> List[str]:
    ordered: List[str] = []

    def add(column_id: str) -> None:
        if column_id and column_id not in ordered:
            ordered.append(column_id)

    for step in instruction.steps or []:
        add(step.target_column_id)
    if isinstance(instruction.target, ColumnTarget):
        add(instruction.target.column_id)
    elif isinstance(instruction.target, ColumnsTarget):
        for column_id in instruction.target.column_ids:
            add(column_id)
    return ordered


def _already_processed(card: Card, instruction_id: str) -> bool:
    return bool(card.processed_by_instructions.get(instruction_id))


def select_cards(
    instruction: Instruction,
    board: BoardSnapshot,
    cards: Dict[str, Card],
    column_ids: List[str],
    triggering_card_id: Optional[str] = None,
    skip_already_processed: bool = False,
) -> Tuple[List[Card], List[str]]:
    """
    Pick the cards a modify/move run operates on.

    A known triggering card narrows the run to that card alone. Otherwise every
    known card in the given columns is used, in column order.

    Returns:
        Tuple of (selected cards, ids skipped as already processed)
    """
    if triggering_card_id and triggering_card_id in cards:
        candidates = [cards[triggering_card_id]]
    else:
        candidates = []
        for column_id in column_ids:
            column = board.column_by_id(column_id)
            if column is None:
                continue
            candidates.extend(cards[card_id] for card_id in column.card_ids if card_id in cards)

    selected: List[Card] = []
    skipped: List[str] = []
    for card in candidates:
        if skip_already_processed and _already_processed(card, instruction.id):
            skipped.append(card.id)
        else:
            selected.append(card)
    return selected, skipped
