"""Configuration management for Kitchen Prep."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PIN_CODE = "1234"


@dataclass
class ServerConfig:
    pin_code: str = DEFAULT_PIN_CODE
    host: str = "127.0.0.1"
    port: int = 3000
    cookie_max_age: int = 60 * 60 * 24 * 7  # Seconds


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"
    transcription_model: str = "gemini-2.0-flash"


@dataclass
class TelegramConfig:
    bot_token: str = ""
    allowed_users: list[int] = field(default_factory=list)


@dataclass
class StorageConfig:
    path: Path = Path("data")


# Default prompt for full recipe parsing
DEFAULT_RECIPE_PROMPT = """You are a recipe parser. Given recipe text, extract ingredients and instructions.

Rules:
- INGREDIENTS: Extract each ingredient as a separate item, keeping quantities and units
- INSTRUCTIONS: Extract cooking steps, separated by newlines

Return ONLY valid JSON in this exact format:
{"ingredients":["ingredient 1","ingredient 2"],"instructions":"Step 1\\nStep 2\\nStep 3"}

Do not include any text before or after the JSON."""

# Default prompt for single ingredient names
DEFAULT_INGREDIENT_PROMPT = (
    "You extract ingredient names from recipe ingredients. "
    "Reply with ONLY the main ingredient name, nothing else. "
    "No quantities, no units, no preparation instructions."
)


@dataclass
class PromptsConfig:
    recipe: str = DEFAULT_RECIPE_PROMPT
    ingredient: str = DEFAULT_INGREDIENT_PROMPT


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)


def _expand_env(value: str) -> str:
    """Replaces ${ENV_VAR} with environment variables."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, "")
    return value


def _validate_user_ids(raw_users: list) -> list[int]:
    """Validates and converts user IDs to integers."""
    valid_ids = []
    for user in raw_users:
        if isinstance(user, bool):
            continue
        if isinstance(user, int):
            valid_ids.append(user)
        elif isinstance(user, str) and user.strip().isdigit():
            valid_ids.append(int(user.strip()))
        else:
            logger.warning(f"Ignoring invalid Telegram user id: {user!r}")
    return valid_ids


def _validate_port(raw_port) -> int:
    try:
        port = int(_expand_env(raw_port) if isinstance(raw_port, str) else raw_port)
    except (TypeError, ValueError):
        logger.warning(f"Invalid port '{raw_port}', defaulting to 3000")
        return 3000
    if not 0 < port < 65536:
        logger.warning(f"Port {port} out of range, defaulting to 3000")
        return 3000
    return port


def load_config(config_path: Path | None = None) -> Config:
    """Loads configuration from YAML file."""
    if config_path is None:
        config_path = Path(__file__).parent / "config.yaml"

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    server_raw = raw.get("server") or {}
    pin_code = _expand_env(str(server_raw.get("pin_code", "${PIN_CODE}")))
    server = ServerConfig(
        pin_code=pin_code or DEFAULT_PIN_CODE,
        host=server_raw.get("host", "127.0.0.1"),
        port=_validate_port(server_raw.get("port", 3000)),
        cookie_max_age=int(server_raw.get("cookie_max_age", ServerConfig.cookie_max_age)),
    )

    gemini_raw = raw.get("gemini") or {}
    gemini = GeminiConfig(
        api_key=_expand_env(gemini_raw.get("api_key", "")),
        model=gemini_raw.get("model", GeminiConfig.model),
        transcription_model=gemini_raw.get(
            "transcription_model", gemini_raw.get("model", GeminiConfig.transcription_model)
        ),
    )

    telegram_raw = raw.get("telegram") or {}
    telegram = TelegramConfig(
        bot_token=_expand_env(telegram_raw.get("bot_token", "")),
        allowed_users=_validate_user_ids(telegram_raw.get("allowed_users") or []),
    )

    storage_raw = raw.get("storage") or {}
    storage = StorageConfig(
        path=Path(_expand_env(storage_raw["path"])) if storage_raw.get("path") else Path("data"),
    )

    prompts_raw = raw.get("prompts") or {}
    prompts = PromptsConfig(
        recipe=prompts_raw.get("recipe", DEFAULT_RECIPE_PROMPT),
        ingredient=prompts_raw.get("ingredient", DEFAULT_INGREDIENT_PROMPT),
    )

    return Config(server=server, gemini=gemini, telegram=telegram, storage=storage, prompts=prompts)
