"""
Loads and handles config from config.yml
Environment variables (and a local .env) override values from the file
"""
import logging
import os
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_RELATIVE_PATH = os.path.join("resources", "config.yml")


class Config(BaseModel):
    # Ollama
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    LLM_TEMPERATURE: float = Field(default=0.8, ge=0.0, le=2.0)
    LLM_TIMEOUT: float = Field(default=300.0, gt=0)
    LLM_NUM_CTX: int = 8192

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_PROMPT_CHARS: int = 300
    LOG_RESPONSE_CHARS: int = 800

    # Server
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 3001
    CORS_ORIGIN: str = "http://localhost:5173"
    MAX_REQUEST_BYTES: int = 10 * 1024 * 1024

    # Pipeline
    MIN_PERSONAS: int = Field(default=1, ge=1)
    MAX_PERSONAS: int = Field(default=7, ge=1)
    SLIDE_SAMPLE_CHARS: int = 500
    EVALUATION_FAILURE_POLICY: Literal["abort", "skip"] = "abort"
    ENFORCE_DELETION_CONSISTENCY: bool = True

    # Client
    SERVER_URL: str = "http://localhost:3001"
    SESSION_DIR: str = "data/sessions"
    HISTORY_DATABASE_PATH: str = "data/history.db"
    HISTORY_LIMIT: int = 20
    SLOW_RUN_SECONDS: float = 90.0
    REPORT_DIR: str = "output"


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> str:
    """Get the path to config.yml, handling different working directories."""
    if os.path.exists(CONFIG_RELATIVE_PATH):
        return CONFIG_RELATIVE_PATH

    # src/deckpanel/services/config.py -> project root
    here = os.path.abspath(__file__)
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(here))))
    config_path = os.path.join(project_root, CONFIG_RELATIVE_PATH)
    if os.path.exists(config_path):
        return config_path

    raise FileNotFoundError(f"Cannot find {CONFIG_RELATIVE_PATH}")


def _apply_env_overrides(values: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(values)
    for name, field in Config.model_fields.items():
        raw = os.getenv(name)
        if raw is None:
            continue
        if field.annotation is bool:
            merged[name] = _bool(raw)
        else:
            merged[name] = raw  # pydantic coerces numeric strings
    return merged


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml, then apply environment overrides."""
    load_dotenv()

    config_path = path or _get_config_path()

    with open(config_path, "r", encoding="utf-8") as file:
        data = yaml.safe_load(file) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a mapping at the top level")

    unknown = sorted(set(data) - set(Config.model_fields))
    if unknown:
        logger.warning(f"Ignoring unknown config keys in {config_path}: {', '.join(unknown)}")
        data = {k: v for k, v in data.items() if k in Config.model_fields}

    if "ENFORCE_DELETION_CONSISTENCY" in data:
        data["ENFORCE_DELETION_CONSISTENCY"] = _bool(data["ENFORCE_DELETION_CONSISTENCY"])

    config = Config(**_apply_env_overrides(data))
    if config.MIN_PERSONAS > config.MAX_PERSONAS:
        raise ValueError("MIN_PERSONAS must not exceed MAX_PERSONAS")
    return config
