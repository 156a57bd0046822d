"""Configuration management using python-dotenv."""

import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _find_dotenv() -> Path | None:
    """Find .env file by walking up from current directory."""
    current = Path.cwd()
    while current != current.parent:
        env_file = current / ".env"
        if env_file.exists():
            return env_file
        current = current.parent
    return None


def load_environment() -> Path | None:
    """Load the nearest .env file into the process environment."""
    env_file = _find_dotenv()
    if env_file:
        load_dotenv(env_file)
    return env_file


class ApiKeyHandling(str, Enum):
    """How the generated node obtains its Fal.ai API key."""

    INPUT = "input"  # node input socket
    CONFIG = "config"  # config.ini beside the node
    EMBEDDED = "embedded"  # FAL_KEY environment variable


DEFAULT_NODE_NAME = "Fal Model"
DEFAULT_CATEGORY = "fal_models"


class GeneratorSettings(BaseModel):
    """Defaults for node generation, overridable per CLI invocation."""

    node_name: str = Field(
        default_factory=lambda: os.getenv("FAL_NODE_GEN_NODE_NAME", ""),
        description="Node display name; empty means derive from the documentation",
    )
    category: str = Field(
        default_factory=lambda: os.getenv("FAL_NODE_GEN_CATEGORY", DEFAULT_CATEGORY),
        min_length=1,
        description="ComfyUI menu category",
    )
    api_key_handling: ApiKeyHandling = Field(
        default_factory=lambda: ApiKeyHandling(
            os.getenv("FAL_NODE_GEN_API_KEY_HANDLING", ApiKeyHandling.EMBEDDED.value).lower()
        ),
        description="How the generated node obtains its API key",
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("FAL_NODE_GEN_LOG_LEVEL", "WARNING").upper(),
        description="Logging level for the CLI",
    )


def get_settings() -> GeneratorSettings:
    """Load .env and build settings from the environment."""
    load_environment()
    return GeneratorSettings()
