"""
Epoch Atlas - Configuration Module

All tunable game parameters live here. Adjust these to change game feel
without touching game logic.
"""

import os

# =============================================================================
# REGIONS
# =============================================================================

REGIONS = [
    "Africa",
    "Antarctica",
    "Asia",
    "Europe",
    "North America",
    "Oceania",
    "South America",
]

# Year each region's first period starts
DEFAULT_ORIGIN_YEAR = 1500
REGION_ORIGINS = {region: DEFAULT_ORIGIN_YEAR for region in REGIONS}
REGION_ORIGINS["Antarctica"] = 1800  # No recorded history worth a quiz before sighting

# Shared upper bound for every region
TERMINAL_YEAR = 2025

# =============================================================================
# PERIOD GRANULARITY
# =============================================================================

# (cursor year below which the bucket applies, bucket length in years)
# Anything at or past the last threshold gets FINE_GRANULARITY.
GRANULARITY_THRESHOLDS = [
    (1800, 50),
    (1900, 20),
    (1940, 10),
    (1950, 5),
]
FINE_GRANULARITY = 1

# Regions that ignore the shrinking table and use one bucket size throughout
FIXED_GRANULARITY_REGIONS = {
    "Antarctica": 50,
}

# =============================================================================
# ROUND SETTINGS
# =============================================================================

ROUND_DURATION_SECONDS = 60
QUESTIONS_PER_ROUND = 3
ANSWER_LETTERS = ["A", "B", "C", "D"]

# Correct answers needed for the round to count and the cursor to move on
PASSING_CORRECT_COUNT = 2

# correct answers -> points
ROUND_POINTS = {
    3: 3,
    2: 2,
}

# =============================================================================
# SCORING
# =============================================================================

# Distinct regions scored in -> bonus percent
DIVERSITY_BONUS_PERCENT = {
    1: 0,
    2: 5,
    3: 10,
    4: 15,
    5: 20,
    6: 25,
    7: 30,
}

# Ordered by min_points; max_points is derived from the next tier
LEVEL_TIERS = [
    {"name": "Novice", "min_points": 0},
    {"name": "Apprentice", "min_points": 100},
    {"name": "Scholar", "min_points": 250},
    {"name": "Historian", "min_points": 500},
    {"name": "Chronicler", "min_points": 900},
    {"name": "Sage", "min_points": 1400},
]

# =============================================================================
# PREFETCH SETTINGS
# =============================================================================

PREFETCH_ENABLED = os.environ.get("PREFETCH_ENABLED", "true").lower() != "false"

# Passing rounds in the current session before speculative fetching starts
PREFETCH_MIN_PASSED_ROUNDS = 2

# =============================================================================
# CONTENT PROVIDER
# =============================================================================

ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
CONTENT_MODEL = os.environ.get("CONTENT_MODEL", "claude-sonnet-4-20250514")
CONTENT_MAX_TOKENS = int(os.environ.get("CONTENT_MAX_TOKENS", "1500"))
PARAGRAPH_WORDS = 150

# How much of a bad payload to keep in error diagnostics
ERROR_EXCERPT_CHARS = 300

# =============================================================================
# PERSISTENCE
# =============================================================================

DATABASE_URL = os.environ.get("DATABASE_URL")
SAVE_DIR = os.environ.get("SAVE_DIR", "saves")
SAVE_FORMAT_VERSION = 2

# =============================================================================
# DEBUG SETTINGS (Development Only)
# =============================================================================

# Set DEBUG_REGION to a valid region name to force that region on start
# Only works when DEBUG_MODE is also True
DEBUG_MODE = os.environ.get("DEBUG_MODE", "").lower() == "true"
DEBUG_REGION = os.environ.get("DEBUG_REGION", "")


def get_debug_region():
    """Returns validated debug region or None if not in debug mode"""
    if DEBUG_MODE and DEBUG_REGION and DEBUG_REGION in REGIONS:
        return DEBUG_REGION
    return None
