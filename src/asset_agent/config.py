# config.py
# Runtime settings, read from the environment (and a .env file if present).
#
# Paths are project-relative unless given as absolute paths.

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_MODEL = "anthropic/claude-3.5-haiku"
DEFAULT_OLLAMA_MODEL = "llama3"


class Settings(BaseModel):
    backend: str = Field(default="openrouter", description="openrouter | ollama")
    model: str = DEFAULT_MODEL
    openrouter_api_key: str | None = None
    base_url: str = "https://openrouter.ai/api/v1"
    ollama_host: str = "http://localhost:11434"
    project_root: Path = Path(".")
    checkpoint_path: Path = Path("Temp/asset_agent_plan.json")
    log_dir: Path = Path("Logs")

    @classmethod
    def from_env(cls) -> "Settings":
        backend = os.getenv("ASSET_AGENT_BACKEND", "openrouter").strip().lower()
        default_model = DEFAULT_OLLAMA_MODEL if backend == "ollama" else DEFAULT_MODEL
        return cls(
            backend=backend,
            model=os.getenv("ASSET_AGENT_MODEL", default_model),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY"),
            base_url=os.getenv("ASSET_AGENT_BASE_URL", "https://openrouter.ai/api/v1"),
            ollama_host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
            project_root=Path(os.getenv("ASSET_AGENT_PROJECT_ROOT", ".")),
            checkpoint_path=Path(os.getenv("ASSET_AGENT_CHECKPOINT", "Temp/asset_agent_plan.json")),
            log_dir=Path(os.getenv("ASSET_AGENT_LOG_DIR", "Logs")),
        )

    def under_root(self, path: Path) -> Path:
        return path if path.is_absolute() else self.project_root / path
