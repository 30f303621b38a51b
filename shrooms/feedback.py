"""
Feedback analysis over the current board layout.

Where cards are now is the only signal: a card sitting in a column named
"Rejected" counts as rejected, whatever path it took to get there. There is no
movement log.
"""

import math
import re
from typing import List, Dict, Optional, Tuple

from .models import (
    BoardSnapshot,
    BoardTopology,
    Card,
    ColumnAnalysis,
    DriftInsight,
    InstructionEffectiveness,
)

INBOX_KEYWORDS = ("inbox", "new", "incoming", "triage", "unsorted", "raw", "ideas", "backlog")
DONE_KEYWORDS = ("done", "complete", "completed", "finished", "shipped", "published", "resolved", "closed")
PROGRESS_KEYWORDS = (
    "progress", "in progress", "doing", "working", "active", "current",
    "this week", "today", "now", "next", "next up",
)
NEGATIVE_KEYWORDS = (
    "dislike", "disliked", "hate", "trash", "delete", "bad", "no", "reject", "rejected",
    "skip", "skipped", "not relevant", "irrelevant", "low", "worst", "spam", "archive",
    "archived", "ignore", "ignored",
)
POSITIVE_KEYWORDS = (
    "like", "liked", "love", "favorite", "favorites", "keep", "good", "yes", "approved",
    "accept", "accepted", "interesting", "useful", "important", "priority", "high", "best",
    "top", "starred", "saved",
)

# Negative is checked before positive: "dislike" contains "like".
SENTIMENT_LEXICON = (
    ("inbox", INBOX_KEYWORDS),
    ("done", DONE_KEYWORDS),
    ("progress", PROGRESS_KEYWORDS),
    ("negative", NEGATIVE_KEYWORDS),
    ("positive", POSITIVE_KEYWORDS),
)

SENTIMENT_LABELS = {
    "inbox": "inbox/entry point",
    "positive": "positive/accepted",
    "negative": "negative/rejected",
    "neutral": "neutral",
    "done": "completed",
    "progress": "in progress",
}

BOARD_TYPE_DESCRIPTIONS = {
    "workflow": "This board follows a workflow pattern (cards progress through stages)",
    "triage": "This board is used for triage/sorting (cards are categorized, not processed)",
    "hybrid": "This board combines workflow and categorization",
}

CONTENT_PATTERNS = (
    (("tofu", "tempeh", "seitan"), "tofu/plant proteins"),
    (("vegan", "plant-based", "dairy-free"), "vegan dishes"),
    (("vegetarian", "meatless", "veggie"), "vegetarian dishes"),
    (("gluten-free", "gluten free"), "gluten-free options"),
    (("thai", "thailand"), "Thai cuisine"),
    (("indian", "curry", "masala", "tikka"), "Indian cuisine"),
    (("mexican", "taco", "burrito", "enchilada"), "Mexican cuisine"),
    (("italian", "pasta", "risotto", "pizza"), "Italian cuisine"),
    (("japanese", "sushi", "ramen", "miso"), "Japanese cuisine"),
    (("chinese", "stir-fry", "wok", "szechuan"), "Chinese cuisine"),
    (("korean", "kimchi", "bibimbap", "gochujang"), "Korean cuisine"),
    (("mediterranean", "greek", "feta", "hummus"), "Mediterranean cuisine"),
    (("middle eastern", "falafel", "shawarma", "tahini"), "Middle Eastern cuisine"),
    (("french", "bourguignon", "croissant", "beurre"), "French cuisine"),
    (("vietnamese", "pho", "banh mi"), "Vietnamese cuisine"),
    (("moroccan", "tagine", "harissa"), "Moroccan cuisine"),
    (("caribbean", "jerk", "plantain"), "Caribbean cuisine"),
    (("turkish", "kebab", "menemen"), "Turkish cuisine"),
    (("cuban", "mojo"), "Cuban cuisine"),
    (("chicken", "poultry"), "chicken dishes"),
    (("beef", "steak", "brisket"), "beef dishes"),
    (("pork", "bacon", "ham"), "pork dishes"),
    (("fish", "salmon", "cod", "seafood", "shrimp"), "seafood dishes"),
    (("soup", "stew", "broth"), "soups and stews"),
    (("salad", "fresh", "raw"), "salads"),
    (("breakfast", "morning", "brunch", "pancake", "oat"), "breakfast items"),
    (("spicy", "hot", "chili", "pepper"), "spicy dishes"),
    (("comfort", "hearty", "rich", "creamy"), "comfort food"),
    (("healthy", "light", "low-cal", "nutritious"), "health-focused meals"),
    (("quick", "easy", "simple", "15-minute", "30-minute"), "quick/easy meals"),
    (("complex", "elaborate", "gourmet", "advanced"), "complex recipes"),
)

STOP_WORDS = frozenset({
    # pronouns, articles, prepositions
    "i", "me", "my", "we", "our", "you", "your", "the", "a", "an", "and", "or",
    "but", "in", "on", "at", "to", "for", "of", "with", "by", "from", "is",
    "are", "was", "were", "be", "been", "being", "have", "has", "had", "do",
    "does", "did", "will", "would", "could", "should", "may", "might", "must",
    "that", "this", "these", "those", "it", "its", "about", "into", "through",
    "during", "before", "after", "above", "below", "between", "under", "again",
    "further", "then", "once", "here", "there", "when", "where", "why", "how",
    "all", "each", "few", "more", "most", "other", "some", "such", "no", "nor",
    "not", "only", "own", "same", "so", "than", "too", "very", "just", "can",
    # verbs
    "want", "like", "prefer", "looking", "need", "make", "made", "get", "got",
    "give", "take", "keep", "stay", "away", "come", "going", "went", "goes",
    "find", "show", "tell", "said", "know", "think", "feel", "seem", "become",
    # adjectives
    "good", "great", "nice", "best", "better", "well", "really", "much", "many",
    "little", "small", "big", "large", "long", "short", "high", "low", "new",
    "old", "first", "last", "next", "every", "any", "both", "even", "still",
    "overly", "simple", "complex", "basic", "advanced", "easy", "hard", "also",
    # board vocabulary
    "cards", "content", "things", "ideas", "items", "suggestions", "options",
    "type", "types", "kind", "kinds", "style", "styles", "based", "focus",
    "include", "avoid", "generate", "create", "add", "remove", "update",
})

NEGATIVE_PREFERENCE_PATTERN = re.compile(
    r"\b(avoid|stay away|don't|do not|no |never|without|less|fewer|skip|exclude)\b"
)
USER_PREFERENCE_PATTERN = re.compile(r"User preference:\s*([^\n]+)", re.IGNORECASE)

MIN_CARDS_FOR_ANALYSIS = 3
MIN_AI_CARDS_FOR_NOTES = 5


def infer_column_sentiment(column_name: str) -> str:
    name = (column_name or "").lower().strip()
    for sentiment, keywords in SENTIMENT_LEXICON:
        if any(keyword in name for keyword in keywords):
            return sentiment
    return "neutral"


def analyze_column_topology(board: BoardSnapshot) -> BoardTopology:
    """Classify the board from its column names and positions."""
    analyses = []
    for index, column in enumerate(board.columns):
        sentiment = infer_column_sentiment(column.name)
        analyses.append(ColumnAnalysis(
            column_id=column.id,
            column_name=column.name,
            sentiment=sentiment,
            is_terminal=sentiment in ("positive", "negative", "done"),
            is_source=index == 0 or sentiment == "inbox",
            card_count=len(column.card_ids),
        ))

    sentiments = {analysis.sentiment for analysis in analyses}
    has_inbox = any(analysis.sentiment == "inbox" or analysis.is_source for analysis in analyses)
    terminal_count = sum(1 for analysis in analyses if analysis.is_terminal)

    board_type = "unknown"
    if "progress" in sentiments or (has_inbox and "done" in sentiments):
        board_type = "workflow"
    elif "positive" in sentiments and "negative" in sentiments:
        board_type = "triage"
    elif has_inbox and terminal_count > 1:
        board_type = "hybrid"

    return BoardTopology(type=board_type, columns=analyses)


def _board_cards(board: BoardSnapshot, cards: Dict[str, Card]) -> List[Tuple[Card, str]]:
    """(card, column id) pairs for every known card currently on the board."""
    placed = []
    seen = set()
    for column in board.columns:
        for card_id in column.card_ids:
            if card_id in seen or card_id not in cards:
                continue
            seen.add(card_id)
            placed.append((cards[card_id], column.id))
    return placed


def analyze_effectiveness(
    board: BoardSnapshot,
    cards: Dict[str, Card],
    topology: Optional[BoardTopology] = None,
) -> InstructionEffectiveness:
    """Score AI-generated cards by the sentiment of the column they sit in."""
    topology = topology or analyze_column_topology(board)
    accepted = rejected = neutral = 0
    for card, column_id in _board_cards(board, cards):
        if card.source != "ai":
            continue
        sentiment = topology.sentiment_for(column_id)
        if sentiment in ("positive", "done"):
            accepted += 1
        elif sentiment == "negative":
            rejected += 1
        else:
            neutral += 1

    total = accepted + rejected + neutral
    rate = accepted / total if total > 0 else 0.0

    patterns = []
    if total >= MIN_AI_CARDS_FOR_NOTES:
        if rate >= 0.7:
            patterns.append("AI suggestions are working well (70%+ acceptance)")
        elif rate <= 0.3:
            patterns.append("AI suggestions need improvement (70%+ in negative/inbox columns)")

    return InstructionEffectiveness(
        generated_count=total,
        accepted_count=accepted,
        rejected_count=rejected,
        neutral_count=neutral,
        acceptance_rate=rate,
        patterns=patterns,
    )


def _card_theme_text(card: Card) -> str:
    first_message = card.messages[0].content[:500] if card.messages else ""
    return f"{card.title or ''} {first_message}".lower()


def extract_content_patterns(cards_to_analyze: List[Card]) -> List[str]:
    """Most common content themes across the given cards, e.g. 'Thai cuisine (3 cards)'."""
    if not cards_to_analyze:
        return []

    texts = [_card_theme_text(card) for card in cards_to_analyze]
    threshold = max(2, math.floor(len(cards_to_analyze) * 0.3))

    counts = []
    for keywords, label in CONTENT_PATTERNS:
        match_count = sum(1 for text in texts if any(keyword in text for keyword in keywords))
        if match_count >= threshold:
            counts.append((label, match_count))

    counts.sort(key=lambda item: item[1], reverse=True)
    return [f"{label} ({count} cards)" for label, count in counts[:5]]


def _cards_in_columns(board: BoardSnapshot, cards: Dict[str, Card], column_ids) -> List[Card]:
    collected = []
    for column in board.columns:
        if column.id in column_ids:
            collected.extend(cards[card_id] for card_id in column.card_ids if card_id in cards)
    return collected


def build_feedback_context(board: BoardSnapshot, cards: Dict[str, Card]) -> Optional[str]:
    """
    Summarize what the current layout says about the user's taste.

    Returns:
        Prompt-ready text, or None when there is nothing worth telling the model
    """
    if board.total_cards() < MIN_CARDS_FOR_ANALYSIS:
        return None

    topology = analyze_column_topology(board)
    effectiveness = analyze_effectiveness(board, cards, topology)
    lines: List[str] = []

    if topology.type in BOARD_TYPE_DESCRIPTIONS:
        lines.append(BOARD_TYPE_DESCRIPTIONS[topology.type])

    positive_columns = topology.with_sentiment("positive")
    negative_columns = topology.with_sentiment("negative")

    if positive_columns:
        names = ", ".join(f'"{column.column_name}"' for column in positive_columns)
        lines.append(f"Positive columns (user likes content here): {names}")
    if negative_columns:
        names = ", ".join(f'"{column.column_name}"' for column in negative_columns)
        lines.append(f"Negative columns (user rejects content here): {names}")

    liked = _cards_in_columns(board, cards, {column.column_id for column in positive_columns})
    disliked = _cards_in_columns(board, cards, {column.column_id for column in negative_columns})

    if len(liked) >= 2 or len(disliked) >= 2:
        lines.append("")
        lines.append("## Content Preferences (IMPORTANT - use these to guide generation)")

        if len(disliked) >= 2:
            disliked_patterns = extract_content_patterns(disliked)
            if disliked_patterns:
                lines.append("")
                lines.append(f"**AVOID generating these types** (user has {len(disliked)} cards in negative columns):")
                lines.extend(f"  - {pattern}" for pattern in disliked_patterns)

        if len(liked) >= 2:
            liked_patterns = extract_content_patterns(liked)
            if liked_patterns:
                lines.append("")
                lines.append(f"**PREFER generating these types** (user has {len(liked)} cards in positive columns):")
                lines.extend(f"  - {pattern}" for pattern in liked_patterns)

        if liked and disliked and len(disliked) / len(liked) >= 3:
            lines.append("")
            lines.append(
                f"WARNING - High rejection rate: {len(disliked)} in negative columns vs {len(liked)} in positive. "
                "Strongly consider changing approach."
            )

    if effectiveness.generated_count >= MIN_CARDS_FOR_ANALYSIS:
        lines.append("")
        lines.append(f"AI has generated {effectiveness.generated_count} cards currently on the board:")
        lines.append(
            f"- {effectiveness.accepted_count} in positive/done columns "
            f"({round(effectiveness.acceptance_rate * 100)}%)"
        )
        lines.append(f"- {effectiveness.rejected_count} in negative columns")
        lines.append(f"- {effectiveness.neutral_count} in inbox/neutral columns")
        if effectiveness.patterns:
            lines.append("")
            lines.extend(f"Note: {pattern}" for pattern in effectiveness.patterns)

    if not any(line.strip() for line in lines):
        return None
    return "\n".join(lines)


def column_semantics_summary(board: BoardSnapshot) -> str:
    lines = ["Board columns and their inferred purpose:"]
    for column in board.columns:
        label = SENTIMENT_LABELS[infer_column_sentiment(column.name)]
        lines.append(f'- "{column.name}": {label}')
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Drift detection
# ---------------------------------------------------------------------------

def extract_keywords(text: str) -> List[str]:
    """Content words of a preference: 4+ characters and not a stop word."""
    cleaned = re.sub(r"[^\w\s]", " ", (text or "").lower())
    return [word for word in cleaned.split() if len(word) >= 4 and word not in STOP_WORDS]


def extract_preferences(board: BoardSnapshot) -> List[Dict[str, object]]:
    preferences = []
    for question in board.questions:
        if question.status == "answered" and question.answer:
            preferences.append({
                "source": "question",
                "text": question.answer,
                "keywords": extract_keywords(question.answer),
            })

    for match in USER_PREFERENCE_PATTERN.finditer(board.ai_instructions or ""):
        text = match.group(1).strip()
        if text:
            preferences.append({
                "source": "instruction",
                "text": text,
                "keywords": extract_keywords(text),
            })
    return preferences


def is_negative_preference(text: str) -> bool:
    return bool(NEGATIVE_PREFERENCE_PATTERN.search((text or "").lower()))


def card_matches_keywords(card: Card, keywords: List[str]) -> bool:
    if not keywords:
        return False
    card_text = " ".join([card.title, card.summary or "", card.message_text(" ")]).lower()
    return any(keyword in card_text for keyword in keywords)


def _mismatch_severity(rejected: int, total: int) -> str:
    """high at 80%+, medium at 70%+ or exactly 2 of 3 rejected, otherwise low."""
    rate = rejected / total
    if rate >= 0.8:
        return "high"
    if rate >= 0.7 or (rejected, total) == (2, 3):
        return "medium"
    return "low"


def detect_drift(board: BoardSnapshot, cards: Dict[str, Card]) -> List[DriftInsight]:
    """
    Compare stated preferences with where matching cards actually sit.

    Negatively phrased preferences are skipped: rejecting something the user
    said to avoid is consistent behavior, not drift.
    """
    insights: List[DriftInsight] = []
    if board.total_cards() < MIN_CARDS_FOR_ANALYSIS:
        return insights

    topology = analyze_column_topology(board)
    effectiveness = analyze_effectiveness(board, cards, topology)
    placed_cards = _board_cards(board, cards)

    seen_texts = set()
    counter = 0
    for preference in extract_preferences(board):
        keywords = preference["keywords"]
        text = preference["text"]
        if not keywords or is_negative_preference(text):
            continue

        rejected = accepted = neutral = 0
        for card, column_id in placed_cards:
            if not card_matches_keywords(card, keywords):
                continue
            sentiment = topology.sentiment_for(column_id)
            if sentiment == "negative":
                rejected += 1
            elif sentiment in ("positive", "done"):
                accepted += 1
            else:
                neutral += 1

        total = rejected + accepted + neutral
        if total < 2:
            continue

        rejection_rate = rejected / total
        if rejection_rate < 0.6 or rejected < 2 or text in seen_texts:
            continue
        seen_texts.add(text)

        counter += 1
        keyword_sample = ", ".join(keywords[:3])
        excerpt = text[:50] + ("..." if len(text) > 50 else "")
        insights.append(DriftInsight(
            id=f"drift-pref-{counter}",
            type="preference_behavior_mismatch",
            severity=_mismatch_severity(rejected, total),
            description=(
                f'You mentioned "{excerpt}", but {rejected} of {total} related cards are in negative columns.'
            ),
            suggested_action=f'Consider being more specific about what "{keyword_sample}" means to you.',
            related_preference=text,
            evidence=f"{rejected} in negative, {accepted} in positive, {neutral} in neutral out of {total}",
        ))

    if effectiveness.generated_count >= MIN_AI_CARDS_FOR_NOTES and effectiveness.acceptance_rate <= 0.3:
        insights.append(DriftInsight(
            id="drift-low-acceptance",
            type="low_acceptance",
            severity="high" if effectiveness.acceptance_rate <= 0.15 else "medium",
            description=(
                f"Only {round(effectiveness.acceptance_rate * 100)}% of AI-generated cards are in positive columns."
            ),
            suggested_action="Try answering more questions to help the AI understand what you want.",
            evidence=(
                f"{effectiveness.accepted_count} in positive, {effectiveness.rejected_count} in negative "
                f"out of {effectiveness.generated_count} total"
            ),
        ))

    return insights
