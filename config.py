# config.py
import os

# ======= Search caps =======
ITERATION_LIMIT = int(os.getenv("TA_ITERATION_LIMIT", "10000"))
# Extra attempts with a different root after the iteration cap trips.
ROOT_RESTARTS   = int(os.getenv("TA_ROOT_RESTARTS", "0"))

# ======= Root placement =======
ROOT_X         = int(os.getenv("TA_ROOT_X", "0"))
ROOT_Y         = int(os.getenv("TA_ROOT_Y", "0"))
ROOT_HEURISTIC = os.getenv("TA_ROOT_HEURISTIC", "degree").strip().lower()  # degree | mobility

# ======= Unconstrained components =======
# "place" drops orphans east of the finished layout; "error" fails the solve.
ORPHAN_POLICY = os.getenv("TA_ORPHAN_POLICY", "place").strip().lower()
ORPHAN_GAP    = int(os.getenv("TA_ORPHAN_GAP", "2"))

# ======= Post-processing =======
NORMALIZE = int(os.getenv("TA_NORMALIZE", "1")) != 0

# ======= Diagnostics =======
TRACE   = int(os.getenv("TA_TRACE", "0")) != 0
LOG_DIR = os.getenv("TA_LOG_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs"))

# ======= Output names =======
LAYOUT_OUT  = os.getenv("TA_LAYOUT_OUT", "layout.txt")
LAYOUT_HTML = os.getenv("TA_LAYOUT_HTML", "layout_view.html")

# ======= Structure generation (OpenAI) =======
LLM_MODEL       = os.getenv("TA_LLM_MODEL", "gpt-4")
LLM_TEMPERATURE = float(os.getenv("TA_LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS  = int(os.getenv("TA_LLM_MAX_TOKENS", "2000"))
LLM_MAX_RETRIES = int(os.getenv("TA_LLM_MAX_RETRIES", "3"))
LLM_BASE_URL    = os.getenv("TA_LLM_BASE_URL", "")
OPENAI_API_KEY  = os.getenv("OPENAI_API_KEY", "")


class CFG:
    ITERATION_LIMIT = ITERATION_LIMIT
    ROOT_RESTARTS   = ROOT_RESTARTS

    ROOT_X         = ROOT_X
    ROOT_Y         = ROOT_Y
    ROOT_HEURISTIC = ROOT_HEURISTIC

    ORPHAN_POLICY = ORPHAN_POLICY
    ORPHAN_GAP    = ORPHAN_GAP

    NORMALIZE = NORMALIZE

    TRACE   = TRACE
    LOG_DIR = LOG_DIR

    LAYOUT_OUT  = LAYOUT_OUT
    LAYOUT_HTML = LAYOUT_HTML

    LLM_MODEL       = LLM_MODEL
    LLM_TEMPERATURE = LLM_TEMPERATURE
    LLM_MAX_TOKENS  = LLM_MAX_TOKENS
    LLM_MAX_RETRIES = LLM_MAX_RETRIES
    LLM_BASE_URL    = LLM_BASE_URL
    OPENAI_API_KEY  = OPENAI_API_KEY


__all__ = ["CFG"]
