"""Configuration constants for json-navigator."""

import os
from pathlib import Path

# Tree pagination. A page shorter than the limit means no more children.
PAGE_SIZE: int = 100

# Page size used when enumerating a whole level (expand subtree / next level).
SUBTREE_PAGE_SIZE: int = 1000

# Max levels walked by "expand next level" before giving up.
EXPAND_LEVEL_MAX_DEPTH: int = 10

# Search pagination and debouncing.
SEARCH_PAGE_SIZE: int = 50
SEARCH_PAGE_SIZES: tuple[int, ...] = (25, 50, 100, 250)
SEARCH_DEBOUNCE_SECONDS: float = 0.3

# Mode policy: when True, plain / case-sensitive / whole-word / regex are fully
# exclusive. When False, only regex excludes the other two.
STRICT_MATCH_MODES: bool = False

# Lifetime of transient notices (no search target, fetch failures).
NOTICE_SECONDS: float = 3.0

# Scalar previews are cut at this many characters.
PREVIEW_LIMIT: int = 120

# Characters shown on each side of the first match in a clipped preview.
CONTEXT_RADIUS: int = 40

# Local engine tuning.
STREAM_BATCH_SIZE: int = 10
PROGRESS_CHUNK_BYTES: int = 1024 * 1024

# Config directory. First directory found is used; env var wins.
CONFIG_DIR_ENV: str = "JSON_NAVIGATOR_CONFIG_DIR"
CONFIG_DIRECTORIES: list[Path] = [
    Path("~/.config/json-navigator").expanduser(),
    Path("~/.json-navigator").expanduser(),
]
LAST_OPENED_FILENAME: str = "last-opened"

# Remote engine.
ENGINE_URL_ENV: str = "JSON_NAVIGATOR_ENGINE_URL"
ENGINE_TOKEN_ENV: str = "JSON_NAVIGATOR_ENGINE_TOKEN"
ENGINE_TIMEOUT_SECONDS: float = 30.0


def resolve_config_directory() -> Path:
    """Return the directory holding persisted client state.

    Uses ``JSON_NAVIGATOR_CONFIG_DIR`` when set, then the first existing entry of
    ``CONFIG_DIRECTORIES``, then the first entry (created on first write).
    """
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in CONFIG_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return CONFIG_DIRECTORIES[0]
