"""Keyword-derived output capabilities for an instruction.

Capabilities are strictly opt-in: a field category (tasks, properties, tags,
assignment) is only offered to the model, and only kept from its output, when
the instruction text mentions it. There is no negation handling here; "don't
add tags" still enables tags and the raw instruction text carries the negation
to the model.
"""

from typing import List, NamedTuple

TASK_KEYWORDS = ("task", "tasks", "action item", "action items", "todo", "to-do", "checklist")
PROPERTY_KEYWORDS = ("property", "properties", "categorize", "category", "metadata")
TAG_KEYWORDS = ("tag", "tags", "label", "labels")
ASSIGNMENT_KEYWORDS = (
    "assign",
    "assignee",
    "assigned to",
    "delegate",
    "responsibility",
    "responsible",
    "who should",
    "allocate",
    "owner of",
    "point person",
)

TAGS_RESTRICTION = "Do NOT add tags - this was not requested."
PROPERTIES_RESTRICTION = "Do NOT add properties - this was not requested."
TASKS_RESTRICTION = "Do NOT create tasks or action items - this was not requested."
ASSIGNMENT_RESTRICTION = "Do NOT add assignedTo - assignment was not requested."


class Capabilities(NamedTuple):
    allow_tasks: bool = False
    allow_properties: bool = False
    allow_tags: bool = False
    allow_assignment: bool = False

    def assignment_enabled(self, members) -> bool:
        """Assignment is only offered when a roster is available to pick from."""
        return self.allow_assignment and bool(members)

    def restrictions(self, assignment_available: bool = True) -> List[str]:
        lines = []
        if not self.allow_tags:
            lines.append(TAGS_RESTRICTION)
        if not self.allow_properties:
            lines.append(PROPERTIES_RESTRICTION)
        if not self.allow_tasks:
            lines.append(TASKS_RESTRICTION)
        if not (self.allow_assignment and assignment_available):
            lines.append(ASSIGNMENT_RESTRICTION)
        return lines


def _mentions_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def parse_capabilities(text: str) -> Capabilities:
    lowered = (text or "").lower()
    return Capabilities(
        allow_tasks=_mentions_any(lowered, TASK_KEYWORDS),
        allow_properties=_mentions_any(lowered, PROPERTY_KEYWORDS),
        allow_tags=_mentions_any(lowered, TAG_KEYWORDS),
        allow_assignment=_mentions_any(lowered, ASSIGNMENT_KEYWORDS),
    )
