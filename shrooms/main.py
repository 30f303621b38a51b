"""FastAPI service for running shroom instructions against board snapshots."""

import logging
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Dict, Optional

from .config import CORS_ORIGINS, LOG_LEVEL
from .engine import ConfigurationError, run_instruction
from .feedback import (
    analyze_column_topology,
    analyze_effectiveness,
    build_feedback_context,
    column_semantics_summary,
    detect_drift,
)
from .models import (
    BoardSnapshot,
    Card,
    CamelModel,
    CompletionNotice,
    Instruction,
    Member,
    Task,
)
from .openrouter import get_llm_client

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Shroom Engine API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class RunInstructionRequest(CamelModel):
    instruction: Instruction
    board: BoardSnapshot
    cards: Dict[str, Card] = {}
    tasks: Dict[str, Task] = {}
    members: Optional[List[Member]] = None
    system_instructions: Optional[str] = None
    triggering_card_id: Optional[str] = None
    skip_already_processed: bool = False


class AnalyzeBoardRequest(CamelModel):
    board: BoardSnapshot
    cards: Dict[str, Card] = {}


async def record_usage() -> None:
    """Usage hook, called once per successful model call."""
    logger.info("Recorded usage for run-instruction")


async def log_notification(notice: CompletionNotice) -> None:
    logger.info("%s: %s (board %s)", notice.title, notice.body, notice.board_id)


@app.get("/")
async def root():
    return {"status": "ok", "service": "Shroom Engine API"}


@app.post("/api/run-instruction")
async def run_instruction_endpoint(request: RunInstructionRequest):
    """Run one instruction and return the validated result payload."""
    try:
        result = await run_instruction(
            request.instruction,
            request.board,
            request.cards,
            llm=get_llm_client(),
            tasks=request.tasks,
            members=request.members,
            system_instructions=request.system_instructions,
            triggering_card_id=request.triggering_card_id,
            skip_already_processed=request.skip_already_processed,
            on_success=record_usage,
            notify=log_notification,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except Exception:
        logger.exception("Run instruction error for %s", request.instruction.id)
        raise HTTPException(status_code=500, detail="Failed to run instruction")
    return result.to_payload()


@app.post("/api/analyze-board")
async def analyze_board(request: AnalyzeBoardRequest):
    topology = analyze_column_topology(request.board)
    effectiveness = analyze_effectiveness(request.board, request.cards, topology)
    return {
        "topology": topology.model_dump(mode="json", by_alias=True),
        "effectiveness": effectiveness.model_dump(mode="json", by_alias=True),
        "feedbackContext": build_feedback_context(request.board, request.cards),
        "columnSemantics": column_semantics_summary(request.board),
        "driftInsights": [
            insight.model_dump(mode="json", by_alias=True, exclude_none=True)
            for insight in detect_drift(request.board, request.cards)
        ],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("shrooms.main:app", host="0.0.0.0", port=8001, reload=True)
