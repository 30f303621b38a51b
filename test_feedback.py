import sys
import os
import unittest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '.')))

from shrooms.feedback import (
    analyze_column_topology,
    analyze_effectiveness,
    build_feedback_context,
    column_semantics_summary,
    extract_content_patterns,
    infer_column_sentiment,
)
from shrooms.models import BoardSnapshot, Card, CardMessage


def board_with(columns):
    """columns: list of (id, name, [card ids])"""
    return BoardSnapshot.model_validate({
        "id": "b1",
        "name": "Meal planning",
        "columns": [{"id": cid, "name": name, "cardIds": ids} for cid, name, ids in columns],
    })


def ai_cards(ids):
    return {card_id: Card(id=card_id, title=f"Idea {card_id}", source="ai") for card_id in ids}


class TestColumnSentiment(unittest.TestCase):

    def test_dislike_is_negative_not_positive(self):
        self.assertEqual(infer_column_sentiment("I dislike this"), "negative")

    def test_lexicon(self):
        expected = {
            "Inbox": "inbox",
            "Done": "done",
            "In Progress": "progress",
            "Rejected": "negative",
            "Archive": "negative",
            "Liked": "positive",
            "Favorites": "positive",
            "Misc": "neutral",
        }
        for name, sentiment in expected.items():
            self.assertEqual(infer_column_sentiment(name), sentiment, name)


class TestTopology(unittest.TestCase):

    def test_triage_board(self):
        board = board_with([("a", "Inbox", []), ("b", "Liked", []), ("c", "Rejected", [])])
        topology = analyze_column_topology(board)
        self.assertEqual(topology.type, "triage")
        self.assertTrue(topology.columns[0].is_source)
        self.assertFalse(topology.columns[0].is_terminal)
        self.assertTrue(topology.columns[2].is_terminal)

    def test_workflow_board(self):
        board = board_with([("a", "Backlog", []), ("b", "In Progress", []), ("c", "Done", [])])
        self.assertEqual(analyze_column_topology(board).type, "workflow")

    def test_hybrid_board(self):
        board = board_with([("a", "Inbox", []), ("b", "Liked", []), ("c", "Favorites", [])])
        self.assertEqual(analyze_column_topology(board).type, "hybrid")

    def test_unknown_board(self):
        board = board_with([("a", "Alpha", []), ("b", "Gamma", [])])
        self.assertEqual(analyze_column_topology(board).type, "unknown")

    def test_card_counts(self):
        board = board_with([("a", "Inbox", ["x", "y"]), ("b", "Liked", [])])
        counts = [column.card_count for column in analyze_column_topology(board).columns]
        self.assertEqual(counts, [2, 0])


class TestEffectiveness(unittest.TestCase):

    def test_seventy_percent_is_working_well(self):
        ids = [f"c{i}" for i in range(10)]
        board = board_with([
            ("a", "Inbox", ids[:3]),
            ("b", "Liked", ids[3:7]),
            ("c", "Done", ids[7:]),
        ])
        result = analyze_effectiveness(board, ai_cards(ids))
        self.assertEqual(result.generated_count, 10)
        self.assertEqual(result.accepted_count, 7)
        self.assertEqual(result.neutral_count, 3)
        self.assertAlmostEqual(result.acceptance_rate, 0.7)
        self.assertTrue(any("working well" in note for note in result.patterns))

    def test_thirty_percent_is_not_working_well(self):
        ids = [f"c{i}" for i in range(10)]
        board = board_with([("b", "Liked", ids[:3]), ("c", "Rejected", ids[3:])])
        result = analyze_effectiveness(board, ai_cards(ids))
        self.assertEqual(result.rejected_count, 7)
        self.assertFalse(any("working well" in note for note in result.patterns))
        self.assertTrue(any("need improvement" in note for note in result.patterns))

    def test_manual_cards_are_ignored(self):
        board = board_with([("b", "Liked", ["m1", "m2"])])
        cards = {"m1": Card(id="m1", title="Mine"), "m2": Card(id="m2", title="Also mine")}
        result = analyze_effectiveness(board, cards)
        self.assertEqual(result.generated_count, 0)
        self.assertEqual(result.acceptance_rate, 0.0)
        self.assertEqual(result.patterns, [])

    def test_no_note_below_five_cards(self):
        ids = ["c1", "c2", "c3", "c4"]
        board = board_with([("b", "Liked", ids)])
        self.assertEqual(analyze_effectiveness(board, ai_cards(ids)).patterns, [])


class TestContentPatterns(unittest.TestCase):

    def test_threshold_scales_with_card_count(self):
        titles = ["Thai curry", "Thai salad", "Pad thai", "Beef stew", "Beef tacos",
                  "Plain toast", "Plain rice", "Plain bread", "Plain water", "Plain crackers"]
        cards = [Card(id=str(i), title=title) for i, title in enumerate(titles)]
        patterns = extract_content_patterns(cards)
        self.assertIn("Thai cuisine (3 cards)", patterns)
        self.assertFalse(any(pattern.startswith("beef dishes") for pattern in patterns))

    def test_first_message_is_considered(self):
        cards = [
            Card(id="1", title="Tonight", messages=[CardMessage(content="A quick vegan chili")]),
            Card(id="2", title="Tomorrow", messages=[CardMessage(content="Vegan ramen bowl")]),
        ]
        self.assertIn("vegan dishes (2 cards)", extract_content_patterns(cards))

    def test_empty(self):
        self.assertEqual(extract_content_patterns([]), [])


class TestFeedbackContext(unittest.TestCase):

    def test_small_board_has_no_context(self):
        board = board_with([("a", "Inbox", ["c1"]), ("b", "Rejected", ["c2"])])
        cards = {"c1": Card(id="c1", title="One"), "c2": Card(id="c2", title="Two")}
        self.assertIsNone(build_feedback_context(board, cards))

    def test_preferences_from_layout(self):
        board = board_with([
            ("a", "Inbox", []),
            ("b", "Liked", ["l1", "l2"]),
            ("c", "Rejected", ["r1", "r2", "r3"]),
        ])
        cards = {
            "l1": Card(id="l1", title="Tofu scramble"),
            "l2": Card(id="l2", title="Tempeh tacos"),
            "r1": Card(id="r1", title="Thai green curry"),
            "r2": Card(id="r2", title="Spicy Thai basil"),
            "r3": Card(id="r3", title="Thai noodle soup"),
        }
        context = build_feedback_context(board, cards)
        self.assertIsNotNone(context)
        self.assertIn("triage", context)
        self.assertIn('Positive columns (user likes content here): "Liked"', context)
        self.assertIn('Negative columns (user rejects content here): "Rejected"', context)
        self.assertIn("**AVOID generating these types**", context)
        self.assertIn("  - Thai cuisine (3 cards)", context)
        self.assertIn("**PREFER generating these types**", context)
        self.assertIn("  - tofu/plant proteins (2 cards)", context)
        self.assertNotIn("WARNING", context)

    def test_high_rejection_warning_and_effectiveness(self):
        ids = ["p1", "n1", "n2", "n3"]
        board = board_with([("b", "Liked", ["p1"]), ("c", "Rejected", ["n1", "n2", "n3"])])
        context = build_feedback_context(board, ai_cards(ids))
        self.assertIn("WARNING - High rejection rate: 3 in negative columns vs 1 in positive.", context)
        self.assertIn("AI has generated 4 cards currently on the board:", context)
        self.assertIn("- 1 in positive/done columns (25%)", context)
        self.assertIn("- 3 in negative columns", context)

    def test_column_semantics_summary(self):
        board = board_with([("a", "Inbox", []), ("b", "Shipped", [])])
        summary = column_semantics_summary(board)
        self.assertIn('- "Inbox": inbox/entry point', summary)
        self.assertIn('- "Shipped": completed', summary)


if __name__ == "__main__":
    unittest.main()
