import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CARDS_DIR = REPO_ROOT / "public" / "cards"


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    api_key_env: str
    base_url: Optional[str]
    text_model: str
    image_model: str
    image_size: str = "1024x1024"

    @property
    def api_key(self) -> Optional[str]:
        key = (os.getenv(self.api_key_env) or "").strip()
        return key or None


def _providers() -> Dict[str, ProviderConfig]:
    return {
        "openai": ProviderConfig(
            name="openai",
            api_key_env="OPENAI_API_KEY",
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            text_model=os.getenv("OPENAI_TEXT_MODEL", "gpt-4o-mini"),
            image_model=os.getenv("OPENAI_IMAGE_MODEL", "dall-e-3"),
        ),
        "google": ProviderConfig(
            name="google",
            api_key_env="GOOGLE_GENERATIVE_AI_API_KEY",
            base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
            text_model=os.getenv("GEMINI_TEXT_MODEL", "gemini-2.0-flash"),
            image_model=os.getenv("GEMINI_IMAGE_MODEL", "imagen-3.0-generate-002"),
        ),
        "doubao": ProviderConfig(
            name="doubao",
            api_key_env="ARK_API_KEY",
            base_url="https://ark.cn-beijing.volces.com/api/v3",
            text_model=os.getenv("DOUBAO_TEXT_MODEL", "doubao-seed-1-8-251228"),
            image_model=os.getenv("DOUBAO_IMAGE_MODEL", "doubao-seedream-4-5-251128"),
            # seedream wants at least 1920x1920
            image_size="1920x1920",
        ),
    }


@dataclass(frozen=True)
class Settings:
    default_provider: str = "openai"
    providers: Dict[str, ProviderConfig] = field(default_factory=_providers)
    timeout_s: float = 60.0
    cards_dir: Path = DEFAULT_CARDS_DIR
    log_level: str = "INFO"
    cors_origins: Tuple[str, ...] = ("*",)
    rate_limit_storage_uri: str = "memory://"


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Read settings from the environment, loading ``.env`` first."""
    load_dotenv(env_file or REPO_ROOT / ".env")

    cards_dir = Path(os.getenv("CARDS_DIR", str(DEFAULT_CARDS_DIR)))
    if not cards_dir.is_absolute():
        cards_dir = REPO_ROOT / cards_dir

    origins = tuple(o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip())

    return Settings(
        default_provider=os.getenv("OMCARD_PROVIDER", "openai"),
        providers=_providers(),
        timeout_s=float(os.getenv("OMCARD_TIMEOUT_S", "60")),
        cards_dir=cards_dir,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=origins or ("*",),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    )
