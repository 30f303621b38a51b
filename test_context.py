import sys
import os
import unittest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '.')))

from shrooms.context import (
    resolve_context_column_ids,
    resolve_target_column_ids,
    select_cards,
    step_source_column_ids,
)
from shrooms.models import BoardSnapshot, Card, Instruction


def make_board():
    return BoardSnapshot.model_validate({
        "id": "b1",
        "name": "Dinner ideas",
        "columns": [
            {"id": "inbox", "name": "Inbox", "cardIds": ["c1", "c2"]},
            {"id": "liked", "name": "Liked", "cardIds": ["c3"]},
            {"id": "nope", "name": "Rejected", "cardIds": ["ghost"]},
        ],
    })


def make_cards():
    return {
        "c1": Card(id="c1", title="Pad thai"),
        "c2": Card(id="c2", title="Green curry", processed_by_instructions={"i1": 1700000000}),
        "c3": Card(id="c3", title="Tofu scramble"),
    }


class TestColumnResolution(unittest.TestCase):

    def setUp(self):
        self.board = make_board()

    def test_board_target_is_every_column(self):
        instruction = Instruction.model_validate({"id": "i1", "action": "generate", "target": {"type": "board"}})
        self.assertEqual(resolve_target_column_ids(instruction.target, self.board), ["inbox", "liked", "nope"])

    def test_column_and_columns_targets(self):
        single = Instruction.model_validate(
            {"id": "i1", "action": "generate", "target": {"type": "column", "columnId": "liked"}}
        )
        several = Instruction.model_validate(
            {"id": "i1", "action": "move", "target": {"type": "columns", "columnIds": ["nope", "inbox"]}}
        )
        self.assertEqual(resolve_target_column_ids(single.target, self.board), ["liked"])
        self.assertEqual(resolve_target_column_ids(several.target, self.board), ["nope", "inbox"])

    def test_context_defaults_to_all_columns(self):
        self.assertEqual(resolve_context_column_ids(None, self.board), ["inbox", "liked", "nope"])
        instruction = Instruction.model_validate(
            {"id": "i1", "action": "generate", "contextColumns": {"type": "all"}}
        )
        self.assertEqual(
            resolve_context_column_ids(instruction.context_columns, self.board),
            ["inbox", "liked", "nope"],
        )

    def test_context_may_differ_from_target(self):
        instruction = Instruction.model_validate({
            "id": "i1",
            "action": "generate",
            "target": {"type": "column", "columnId": "inbox"},
            "contextColumns": {"type": "columns", "columnIds": ["liked", "nope"]},
        })
        self.assertEqual(resolve_target_column_ids(instruction.target, self.board), ["inbox"])
        self.assertEqual(resolve_context_column_ids(instruction.context_columns, self.board), ["liked", "nope"])

    def test_step_sources_are_ordered_and_unique(self):
        instruction = Instruction.model_validate({
            "id": "i1",
            "action": "modify",
            "target": {"type": "columns", "columnIds": ["liked", "nope"]},
            "steps": [
                {"action": "modify", "targetColumnId": "inbox", "description": "tidy"},
                {"action": "move", "targetColumnId": "inbox", "description": "sort"},
            ],
        })
        self.assertEqual(step_source_column_ids(instruction), ["inbox", "liked", "nope"])


class TestSelectCards(unittest.TestCase):

    def setUp(self):
        self.board = make_board()
        self.cards = make_cards()
        self.instruction = Instruction(id="i1", action="modify")

    def test_all_known_cards_in_columns(self):
        selected, skipped = select_cards(self.instruction, self.board, self.cards, ["inbox", "nope"])
        self.assertEqual([card.id for card in selected], ["c1", "c2"])
        self.assertEqual(skipped, [])

    def test_skip_already_processed(self):
        selected, skipped = select_cards(
            self.instruction, self.board, self.cards, ["inbox"], skip_already_processed=True
        )
        self.assertEqual([card.id for card in selected], ["c1"])
        self.assertEqual(skipped, ["c2"])

    def test_triggering_card_narrows_selection(self):
        selected, skipped = select_cards(
            self.instruction, self.board, self.cards, ["inbox", "liked"], triggering_card_id="c3"
        )
        self.assertEqual([card.id for card in selected], ["c3"])

    def test_processed_triggering_card_is_skipped(self):
        selected, skipped = select_cards(
            self.instruction, self.board, self.cards, ["inbox"],
            triggering_card_id="c2", skip_already_processed=True,
        )
        self.assertEqual(selected, [])
        self.assertEqual(skipped, ["c2"])

    def test_unknown_triggering_card_falls_back_to_columns(self):
        selected, _ = select_cards(
            self.instruction, self.board, self.cards, ["liked"], triggering_card_id="missing"
        )
        self.assertEqual([card.id for card in selected], ["c3"])


if __name__ == "__main__":
    unittest.main()
