import sys
import os
import unittest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '.')))

from shrooms.feedback import detect_drift, extract_keywords, extract_preferences, is_negative_preference
from shrooms.models import BoardSnapshot, Card


def thai_board(answer, ai_instructions=""):
    board = BoardSnapshot.model_validate({
        "id": "b1",
        "name": "Dinner",
        "columns": [
            {"id": "inbox", "name": "Inbox", "cardIds": ["c1"]},
            {"id": "liked", "name": "Liked", "cardIds": ["c4", "c5"]},
            {"id": "nope", "name": "Rejected", "cardIds": ["c2", "c3"]},
        ],
        "questions": [{"question": "What do you like?", "status": "answered", "answer": answer}],
        "aiInstructions": ai_instructions,
    })
    cards = {
        "c1": Card(id="c1", title="Spicy Thai curry"),
        "c2": Card(id="c2", title="Thai basil stir fry"),
        "c3": Card(id="c3", title="Spicy noodle bowl"),
        "c4": Card(id="c4", title="Mushroom risotto"),
        "c5": Card(id="c5", title="Lentil stew"),
    }
    return board, cards


class TestKeywords(unittest.TestCase):

    def test_stop_words_and_short_words_removed(self):
        self.assertEqual(extract_keywords("I love spicy Thai food!"), ["love", "spicy", "thai", "food"])

    def test_negative_phrasing(self):
        self.assertTrue(is_negative_preference("avoid spicy food"))
        self.assertTrue(is_negative_preference("Please don't add mushrooms"))
        self.assertFalse(is_negative_preference("I love spicy Thai food"))

    def test_preferences_from_questions_and_instruction_history(self):
        board, _ = thai_board(
            "I love spicy Thai food",
            ai_instructions="Generated weekly plan.\nUser preference: more lentil dishes\n",
        )
        board.questions.append(board.questions[0].model_copy(update={"status": "pending", "answer": "ignored"}))
        preferences = extract_preferences(board)
        self.assertEqual([p["source"] for p in preferences], ["question", "instruction"])
        self.assertEqual(preferences[1]["text"], "more lentil dishes")
        self.assertEqual(preferences[1]["keywords"], ["lentil", "dishes"])


class TestDetectDrift(unittest.TestCase):

    def test_stated_preference_contradicted_by_rejections(self):
        board, cards = thai_board("I love spicy Thai food")
        insights = detect_drift(board, cards)
        self.assertEqual(len(insights), 1)
        insight = insights[0]
        self.assertEqual(insight.type, "preference_behavior_mismatch")
        self.assertEqual(insight.severity, "medium")
        self.assertEqual(insight.evidence, "2 in negative, 0 in positive, 1 in neutral out of 3")
        self.assertEqual(insight.related_preference, "I love spicy Thai food")
        self.assertIn("2 of 3 related cards", insight.description)

    def test_negative_preference_is_consistent_behavior(self):
        board, cards = thai_board("avoid spicy food")
        self.assertEqual(detect_drift(board, cards), [])

    def test_high_severity(self):
        board, cards = thai_board("I love spicy Thai food")
        board.columns[0].card_ids = []
        board.columns[2].card_ids = ["c1", "c2", "c3"]
        insights = detect_drift(board, cards)
        self.assertEqual(insights[0].severity, "high")
        self.assertEqual(insights[0].evidence, "3 in negative, 0 in positive, 0 in neutral out of 3")

    def test_severity_below_seventy_percent_is_low(self):
        rejected_ids = [f"r{i}" for i in range(13)]
        neutral_ids = [f"n{i}" for i in range(7)]
        board = BoardSnapshot.model_validate({
            "id": "b1",
            "name": "Dinner",
            "columns": [
                {"id": "inbox", "name": "Inbox", "cardIds": neutral_ids},
                {"id": "nope", "name": "Rejected", "cardIds": rejected_ids},
            ],
            "questions": [{"question": "What do you like?", "status": "answered", "answer": "I love spicy Thai food"}],
        })
        cards = {card_id: Card(id=card_id, title="Thai green curry") for card_id in rejected_ids + neutral_ids}
        insights = detect_drift(board, cards)
        self.assertEqual(insights[0].evidence, "13 in negative, 0 in positive, 7 in neutral out of 20")
        self.assertEqual(insights[0].severity, "low")

        board.columns[0].card_ids = neutral_ids[:3]
        board.columns[1].card_ids = rejected_ids[:7]
        insights = detect_drift(board, cards)
        self.assertEqual(insights[0].evidence, "7 in negative, 0 in positive, 3 in neutral out of 10")
        self.assertEqual(insights[0].severity, "medium")

    def test_duplicate_preferences_reported_once(self):
        board, cards = thai_board("I love spicy Thai food", ai_instructions="User preference: I love spicy Thai food")
        self.assertEqual(len(detect_drift(board, cards)), 1)

    def test_small_board(self):
        board, cards = thai_board("I love spicy Thai food")
        board.columns[1].card_ids = []
        board.columns[2].card_ids = ["c2"]
        self.assertEqual(detect_drift(board, cards), [])

    def test_low_acceptance(self):
        ids = [f"a{i}" for i in range(5)]
        board = BoardSnapshot.model_validate({
            "id": "b2",
            "name": "Reading list",
            "columns": [
                {"id": "inbox", "name": "Inbox", "cardIds": []},
                {"id": "nope", "name": "Rejected", "cardIds": ids},
            ],
        })
        cards = {card_id: Card(id=card_id, title="Suggested article", source="ai") for card_id in ids}
        insights = detect_drift(board, cards)
        self.assertEqual([insight.type for insight in insights], ["low_acceptance"])
        self.assertEqual(insights[0].severity, "high")
        self.assertEqual(insights[0].evidence, "0 in positive, 5 in negative out of 5 total")


if __name__ == "__main__":
    unittest.main()
