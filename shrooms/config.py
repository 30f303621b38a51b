"""Configuration for the shroom instruction engine."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")

# OpenRouter API key
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_SITE_URL = os.getenv("OPENROUTER_SITE_URL", "http://localhost")
OPENROUTER_APP_TITLE = os.getenv("OPENROUTER_APP_TITLE", "Shroom Engine")

# OpenRouter API endpoint
OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"

# Model used to run instructions
INSTRUCTION_MODEL = os.getenv("INSTRUCTION_MODEL", "openai/gpt-4o")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "120"))
LLM_MAX_TOKENS = 4096

# Web research
SEARCH_MODEL = os.getenv("SEARCH_MODEL", "openai/gpt-4o-mini-search-preview")
SEARCH_TIMEOUT = 45.0
SEARCH_CONTEXT_SIZE = "high"
SEARCH_MAX_TOKENS = 1500
SEARCH_QUERY_MAX_CHARS = 300

# Generation defaults
DEFAULT_CARD_COUNT = 5

# Canned ideas returned when no LLM is available or generation fails
STUB_IDEAS = [
    "Try a new approach to this",
    "Consider the opposite perspective",
    "What if we simplified this?",
    "Explore related concepts",
    "Break this into smaller parts",
]

# HTTP service
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
