"""koko shared constants loaded from constants.yaml."""

from pathlib import Path

import yaml

_YAML_PATH = Path(__file__).resolve().with_name("constants.yaml")

with open(_YAML_PATH, encoding="utf-8") as f:
    _cfg = yaml.safe_load(f)

# --- Audio ---
SAMPLE_RATE: int = _cfg["sample_rate"]

# --- Token Budget ---
MAX_CHUNK_TOKENS: int = _cfg["max_chunk_tokens"]
ENGINE_CONTEXT_TOKENS: int = _cfg["engine_context_tokens"]
PAD_TOKEN_ID: int = _cfg["pad_token_id"]
SILENCE_TOKEN_ID: int = _cfg["silence_token_id"]

# --- Style Vectors ---
STYLE_DIM: int = _cfg["style_dim"]
STYLE_POSITIONS: int = _cfg["style_positions"]

# --- Execution ---
MIN_THREADS_PER_INSTANCE: int = _cfg["min_threads_per_instance"]
DEFAULT_INSTANCES: int = _cfg["default_instances"]

# --- Defaults ---
DEFAULT_LANGUAGE: str = _cfg["default_language"]
DEFAULT_STYLE: str = _cfg["default_style"]
DEFAULT_MODEL_PATH: str = _cfg["default_model_path"]
DEFAULT_DATA_PATH: str = _cfg["default_data_path"]
MODEL_URL: str = _cfg["model_url"]
DEFAULT_LOG_FILE: str = _cfg["default_log_file"]
DEFAULT_HTTP_PORT: int = _cfg["default_http_port"]
