import asyncio
import json
import os
import sys

sys.path.insert(0, ".")

from shrooms.engine import run_instruction
from shrooms.models import BoardSnapshot, Card, Instruction
from shrooms.openrouter import OpenRouterClient, get_llm_client


async def main():
    board = BoardSnapshot.model_validate({
        "id": "demo",
        "name": "Weeknight dinners",
        "description": "Quick meals for two",
        "columns": [
            {"id": "inbox", "name": "Inbox", "cardIds": ["c1"]},
            {"id": "liked", "name": "Liked", "cardIds": ["c2"]},
            {"id": "nope", "name": "Rejected", "cardIds": ["c3"]},
        ],
    })
    cards = {
        "c1": Card(id="c1", title="Shakshuka"),
        "c2": Card(id="c2", title="Tofu stir fry", source="ai"),
        "c3": Card(id="c3", title="Beef wellington", source="ai"),
    }
    instruction = Instruction.model_validate({
        "id": "demo-generate",
        "title": "Dinner ideas",
        "action": os.getenv("SHROOM_ACTION", "generate"),
        "instructionsText": os.getenv("SHROOM_TEXT", "Suggest quick vegetarian dinners"),
        "target": {"type": "column", "columnId": "inbox"},
        "cardCount": 3,
    })

    model = os.getenv("SHROOM_MODEL")
    llm = get_llm_client()
    if llm is not None and model:
        llm = OpenRouterClient(llm.api_key, model=model)

    result = await run_instruction(instruction, board, cards, llm=llm)
    payload = result.to_payload()
    debug = payload.pop("debug", {})
    print("RESULT:")
    print(json.dumps(payload, indent=2))
    print("\nUSER PROMPT (first 600 chars):")
    print((debug.get("userPrompt") or "")[:600])


if __name__ == "__main__":
    asyncio.run(main())
