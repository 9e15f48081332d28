# backend/features/term_drill/config.py
"""
Central configuration for the term drill feature.

Values that depend on the deployment come from the environment (a local .env
file is honoured). Game tuning lives in ``engine/policy.py``.
"""
import os

from dotenv import load_dotenv

load_dotenv()

# --- Logging ---
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Concept generation (Gemini) ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("TERM_DRILL_GEMINI_MODEL", "gemini-1.5-flash")
GENERATION_TIMEOUT = int(os.getenv("TERM_DRILL_GENERATION_TIMEOUT", "60"))

# --- Content preparation ---
DEFAULT_LANGUAGE = os.getenv("TERM_DRILL_DEFAULT_LANGUAGE", "sv")
DEFAULT_GRADE = 5
DEFAULT_MIN_TERMS = 6
DEFAULT_MAX_DISTRACTORS = 4
MIN_GENERATED_CONCEPTS = 8
MAX_GENERATION_CHARS = 8000
MIN_PLAYABLE_TERMS = 3
MIN_TOPIC_HINT_LENGTH = 3
MAX_EXAMPLES = 3
MAX_REVIEW_EXAMPLES = 2

GENERATED_MATERIAL_ID = "generated"

LANGUAGE_LABELS = {
    "sv": "svenska",
    "en": "engelska",
    "es": "spanska",
}

# --- Live sessions ---
SESSION_IDLE_SECONDS = int(os.getenv("TERM_DRILL_SESSION_IDLE_SECONDS", "1800"))
