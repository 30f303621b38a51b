"""Board snapshot, instruction and result models.

Attributes are snake_case; the JSON wire format is camelCase. Either spelling
is accepted on input.
"""

from typing import List, Dict, Any, Optional, Union, Literal, Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

InstructionAction = Literal["generate", "modify", "move"]
ResultAction = Literal["generate", "modify", "move", "multi-step"]
ColumnSentiment = Literal["positive", "negative", "neutral", "inbox", "done", "progress"]
BoardType = Literal["workflow", "triage", "hybrid", "unknown"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Instruction
# ---------------------------------------------------------------------------

class BoardTarget(CamelModel):
    type: Literal["board"] = "board"


class ColumnTarget(CamelModel):
    type: Literal["column"] = "column"
    column_id: str


class ColumnsTarget(CamelModel):
    type: Literal["columns"] = "columns"
    column_ids: List[str] = []


InstructionTarget = Annotated[
    Union[BoardTarget, ColumnTarget, ColumnsTarget],
    Field(discriminator="type"),
]


class AllContextColumns(CamelModel):
    type: Literal["all"] = "all"


class SelectedContextColumns(CamelModel):
    type: Literal["columns"] = "columns"
    column_ids: List[str] = []


ContextColumnSelection = Annotated[
    Union[AllContextColumns, SelectedContextColumns],
    Field(discriminator="type"),
]


class InstructionStep(CamelModel):
    action: InstructionAction
    target_column_id: str
    description: str = ""
    card_count: Optional[int] = Field(default=None, ge=1)


class Instruction(CamelModel):
    id: str
    title: str = ""
    instructions_text: str = ""
    action: InstructionAction
    target: InstructionTarget = Field(default_factory=BoardTarget)
    context_columns: Optional[ContextColumnSelection] = None
    card_count: Optional[int] = Field(default=None, ge=1)
    steps: Optional[List[InstructionStep]] = None

    @property
    def is_multi_step(self) -> bool:
        return bool(self.steps)


# ---------------------------------------------------------------------------
# Board snapshot
# ---------------------------------------------------------------------------

class Column(CamelModel):
    id: str
    name: str
    instructions: Optional[str] = None
    card_ids: List[str] = []


class TagDefinition(CamelModel):
    name: str
    color: str = "gray"


class BoardQuestion(CamelModel):
    question: str = ""
    status: Literal["pending", "answered", "dismissed"] = "pending"
    answer: Optional[str] = None


class BoardSnapshot(CamelModel):
    id: str
    name: str
    description: str = ""
    columns: List[Column] = []
    tag_definitions: List[TagDefinition] = []
    questions: List[BoardQuestion] = []
    ai_instructions: str = ""

    def column_by_id(self, column_id: str) -> Optional[Column]:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def column_for_card(self, card_id: str) -> Optional[Column]:
        for column in self.columns:
            if card_id in column.card_ids:
                return column
        return None

    def total_cards(self) -> int:
        return sum(len(column.card_ids) for column in self.columns)


class CardMessage(CamelModel):
    type: Literal["note", "question", "ai_response"] = "note"
    content: str = ""


class Card(CamelModel):
    id: str
    title: str
    summary: Optional[str] = None
    messages: List[CardMessage] = []
    task_ids: List[str] = []
    processed_by_instructions: Dict[str, Any] = {}
    source: Literal["manual", "ai"] = "manual"

    def message_text(self, separator: str = "\n") -> str:
        return separator.join(message.content for message in self.messages)


class Task(CamelModel):
    id: str
    title: str
    status: Literal["not_started", "in_progress", "done"] = "not_started"


class Member(CamelModel):
    id: str
    name: str
    role: Optional[str] = None
    role_description: Optional[str] = None


# ---------------------------------------------------------------------------
# Execution output
# ---------------------------------------------------------------------------

class CardDraft(CamelModel):
    title: str
    initial_message: Optional[str] = None
    assigned_to: Optional[List[str]] = None
    target_column_id: Optional[str] = None


class CardProperty(CamelModel):
    key: str
    value: str
    display_type: Literal["chip", "field"] = "chip"
    color: Optional[str] = None


class TaskDraft(CamelModel):
    title: str
    description: Optional[str] = None
    assigned_to: Optional[List[str]] = None


class CardPatch(CamelModel):
    id: str
    title: str
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    properties: Optional[List[CardProperty]] = None
    tasks: Optional[List[TaskDraft]] = None
    assigned_to: Optional[List[str]] = None


class MoveDecision(CamelModel):
    card_id: str
    destination_column_id: str
    reason: Optional[str] = None


class MultiStepOutput(CamelModel):
    generated_cards: List[CardDraft] = []
    modified_cards: List[CardPatch] = []
    moved_cards: List[MoveDecision] = []


class DebugInfo(CamelModel):
    system_prompt: str = ""
    user_prompt: str = ""
    raw_response: str = ""


class ExecutionResult(CamelModel):
    action: ResultAction
    target_column_ids: List[str] = []
    generated_cards: Optional[List[CardDraft]] = None
    modified_cards: Optional[List[CardPatch]] = None
    moved_cards: Optional[List[MoveDecision]] = None
    skipped_card_ids: Optional[List[str]] = None
    message: Optional[str] = None
    error: Optional[str] = None
    debug: Optional[DebugInfo] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CompletionNotice(CamelModel):
    type: Literal["shroom_completed"] = "shroom_completed"
    title: str = "Shroom finished running"
    body: str
    board_id: str
    instruction_id: str


# ---------------------------------------------------------------------------
# Feedback analysis
# ---------------------------------------------------------------------------

class ColumnAnalysis(CamelModel):
    column_id: str
    column_name: str
    sentiment: ColumnSentiment
    is_terminal: bool
    is_source: bool
    card_count: int


class BoardTopology(CamelModel):
    type: BoardType
    columns: List[ColumnAnalysis] = []

    def with_sentiment(self, sentiment: str) -> List[ColumnAnalysis]:
        return [column for column in self.columns if column.sentiment == sentiment]

    def sentiment_for(self, column_id: str) -> Optional[str]:
        for column in self.columns:
            if column.column_id == column_id:
                return column.sentiment
        return None


class InstructionEffectiveness(CamelModel):
    generated_count: int = 0
    accepted_count: int = 0
    rejected_count: int = 0
    neutral_count: int = 0
    acceptance_rate: float = 0.0
    patterns: List[str] = []


class DriftInsight(CamelModel):
    id: str
    type: Literal["preference_behavior_mismatch", "declining_acceptance", "low_acceptance"]
    severity: Literal["low", "medium", "high"]
    description: str
    suggested_action: Optional[str] = None
    related_preference: Optional[str] = None
    evidence: Optional[str] = None
