"""Configuration loader: environment first, optional config.yaml underneath.

Secrets and deployment values come from the environment (a ``.env`` file is
honoured). Non-secret settings can also live in a YAML file; environment
variables win. Loaded once at startup and read-only afterwards.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

DEFAULT_SPEC_FILES = [
    "/.specify/constitution.md",
    "/.specify/plan.md",
    "/.specify/spec.md",
    "/.specify/tasks.md",
]

_SECRET_FIELDS = {"openrouter_api_key", "openai_api_key", "azdo_pat"}

# Environment variable → config field. Later names win for the same field.
_ENV_MAP: dict[str, str] = {
    "PORT": "port",
    "LLM_PROVIDER": "llm_provider",
    "LLM_MODEL": "llm_model",
    "OPENROUTER_API_KEY": "openrouter_api_key",
    "OPENAI_API_KEY": "openai_api_key",
    "AZURE_OPENAI_ENDPOINT": "azure_openai_endpoint",
    "AZURE_MODEL_DEPLOYMENT": "azure_model_deployment",
    "AZURE_OPENAI_API_VERSION": "azure_openai_api_version",
    "AZDO_ORG": "azdo_org",
    "AZDO_PROJECT": "azdo_project",
    "AZDO_REPO_ID": "azdo_repo_id",
    "AZDO_PIPELINE_ID": "azdo_pipeline_id",
    "AZDO_PERSONAL_ACCESS_TOKEN": "azdo_pat",
    "AZDO_PAT": "azdo_pat",
    "ALLOWED_ORIGINS": "allowed_origins",
}


class ProxyConfig(BaseModel):
    """Top-level proxy configuration."""

    port: int = 3333

    # Chat completion
    llm_provider: Literal["openrouter", "azure", "openai"] = "openrouter"
    llm_model: str = "gpt-4o-mini"
    max_tokens: int = 1500
    temperature: float = 0.2
    openrouter_api_key: str | None = None
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    openai_api_key: str | None = None
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    azure_openai_endpoint: str | None = None
    azure_model_deployment: str | None = None
    azure_openai_api_version: str = "2024-06-01"

    # Azure DevOps
    azdo_base_url: str = "https://dev.azure.com"
    azdo_org: str | None = None
    azdo_project: str | None = None
    azdo_repo_id: str | None = None
    azdo_pipeline_id: str | None = None
    azdo_pat: str | None = None
    azdo_api_version: str = "7.1"
    branch_ref: str = "refs/heads/main"
    spec_files: list[str] = DEFAULT_SPEC_FILES

    # HTTP boundary
    allowed_origins: list[str] = ["*"]
    max_body_bytes: int = 2 * 1024 * 1024
    request_timeout: float = 60.0

    @field_validator("llm_provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @field_validator("spec_files")
    @classmethod
    def spec_files_are_rooted(cls, v: list[str]) -> list[str]:
        for path in v:
            if not path.startswith("/"):
                raise ValueError(f"spec file '{path}' must start with '/'")
        return v

    @property
    def azdo_configured(self) -> bool:
        return all([self.azdo_org, self.azdo_project, self.azdo_pat])

    def redacted(self) -> dict:
        """Dump the config with secrets masked, for the /config endpoint."""
        data = self.model_dump()
        for name in _SECRET_FIELDS:
            if data.get(name):
                data[name] = "***"
        return data


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: ProxyConfig | None = None


def _read_env(environ: dict[str, str]) -> dict[str, str]:
    values: dict[str, str] = {}
    for env_name, field_name in _ENV_MAP.items():
        raw = environ.get(env_name)
        if raw:
            values[field_name] = raw
    return values


def load_config(
    path: str | None = None,
    environ: dict[str, str] | None = None,
) -> ProxyConfig:
    """Merge config.yaml (if present) with the environment, validate, and cache."""
    global _config

    if environ is None:
        load_dotenv()
        environ = dict(os.environ)

    path = path or environ.get("SPECKIT_CONFIG", "config.yaml")
    raw: dict = {}
    config_file = Path(path)
    if config_file.exists():
        raw = yaml.safe_load(config_file.read_text()) or {}
        logger.info(f"Loaded settings from {config_file.resolve()}")

    raw.update(_read_env(environ))
    _config = ProxyConfig(**raw)

    if not _config.azdo_configured:
        logger.warning(
            "Missing some AZDO_* settings. Repo and pipeline calls will fail "
            "until configured."
        )
    return _config


def get_config() -> ProxyConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded, call load_config() first")
    return _config
