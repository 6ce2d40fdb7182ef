"""Configuration constants, paths, and thresholds."""

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Load .env if present
# ---------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent.parent
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    for _line in _env_path.read_text().splitlines():
        _line = _line.strip()
        if _line and not _line.startswith("#") and "=" in _line:
            _k, _, _v = _line.partition("=")
            os.environ.setdefault(_k.strip(), _v.strip().strip("\"'"))

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
OUTPUT_DIR = BASE_DIR / "output"
DRAFT_PATH = OUTPUT_DIR / "combined_playbook.json"

# ---------------------------------------------------------------------------
# Comparison batching (external comparator input bounds)
# ---------------------------------------------------------------------------
BASE_BATCH_SIZE = 10
COMPARISON_BATCH_SIZE = 5

# ---------------------------------------------------------------------------
# Embedding Thresholds (heuristic mode)
# ---------------------------------------------------------------------------
EMBED_MODEL = os.environ.get("EMBED_MODEL", "BAAI/bge-base-en-v1.5")
EMBED_MODEL_FALLBACK = "all-MiniLM-L6-v2"
OVERLAP_THRESHOLD = float(os.environ.get("OVERLAP_THRESHOLD", "0.85"))

# ---------------------------------------------------------------------------
# LLM Settings
# ---------------------------------------------------------------------------
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
LLM_MODEL = os.environ.get("LLM_MODEL", "claude-sonnet-4-20250514")
LLM_MAX_TOKENS = 4096

# ---------------------------------------------------------------------------
# Playbook defaults
# ---------------------------------------------------------------------------
DEFAULT_CATEGORY = "Rules for Contract Amendments"
DEFAULT_JURISDICTION = "Singapore"
