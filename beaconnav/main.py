"""Application entry point for the beaconnav service.

Run locally:
    uvicorn beaconnav.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import uvicorn

from beaconnav.api import create_app

LOGGER = logging.getLogger(__name__)

ENV_FILES = (Path("beaconnav/.env"), Path(".env"))


def _parse_env_line(raw: str) -> tuple[str, str] | None:
    """Split one `KEY=value` line; comments, blanks and `export ` prefixes are handled."""
    line = raw.strip()
    if line.startswith("export "):
        line = line[len("export ") :].lstrip()
    if not line or line.startswith("#"):
        return None
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        value = value[1:-1]
    return key, value


def _load_local_env(paths: tuple[Path, ...] = ENV_FILES) -> list[str]:
    """Copy settings from local env files into `os.environ`.

    Variables already set in the environment win, and so does the first
    file that defines a key. Returns the keys that were set.
    """
    loaded: list[str] = []
    for env_path in paths:
        if not env_path.is_file():
            continue
        for raw in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw)
            if parsed is None or parsed[0] in os.environ:
                continue
            os.environ[parsed[0]] = parsed[1]
            loaded.append(parsed[0])
    return loaded


def _configure_logging() -> None:
    level = os.getenv("BEACONNAV_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


_loaded_keys = _load_local_env()
_configure_logging()
if _loaded_keys:
    LOGGER.info("Loaded %d setting(s) from local env files", len(_loaded_keys))
app = create_app()


if __name__ == "__main__":
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    reload_enabled = os.getenv("API_RELOAD", "true").lower() == "true"
    uvicorn.run("beaconnav.main:app", host=host, port=port, reload=reload_enabled)
