"""
Configuration for the backchannel service.

Priority for the data directory:
1. Environment variable BACKCHANNEL_DATA_DIR
2. '<repository root>/data'

Remaining settings live in ``backchannel.json`` inside the data directory.
Missing fields are filled from defaults and the file is written back so it
always documents every option. BACKCHANNEL_CACHE overrides ``cache_backend``.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DATA_ROOT_ENV_VAR = "BACKCHANNEL_DATA_DIR"
CACHE_BACKEND_ENV_VAR = "BACKCHANNEL_CACHE"
CONFIG_FILE_NAME = "backchannel.json"

_REPO_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_DATA_DIR = _REPO_ROOT / "data"


class BackChannelConfig(BaseModel):
    cache_backend: Literal["file", "memory"] = Field(
        default="file",
        description="Where the resolution cache slot lives: a JSON file in the data dir, or process memory.",
    )
    cache_file_name: str = Field(
        default="local_storage.json",
        description="File name of the resolution cache slot inside the data directory.",
    )
    seed_file: Optional[str] = Field(
        default=None,
        description="Optional YAML file of store definitions loaded on startup.",
    )
    log_level: str = Field(default="INFO", description="Root log level.")


def get_data_dir() -> Path:
    env_path = os.environ.get(DATA_ROOT_ENV_VAR)
    if env_path:
        d = Path(env_path).expanduser()
    else:
        d = _DEFAULT_DATA_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d


def load_config(data_dir: Optional[Path] = None) -> BackChannelConfig:
    """
    Load backchannel.json, merging with defaults, and persist the result.
    """
    data_dir = data_dir or get_data_dir()
    path = data_dir / CONFIG_FILE_NAME
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            config = BackChannelConfig(**raw)
        except Exception as e:
            logger.warning(f"Invalid {CONFIG_FILE_NAME}, falling back to defaults: {e}")
            config = BackChannelConfig()
    else:
        config = BackChannelConfig()

    try:
        path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not write {path}: {e}")

    backend = os.environ.get(CACHE_BACKEND_ENV_VAR)
    if backend:
        config = BackChannelConfig(**{**config.model_dump(), "cache_backend": backend})
    return config
