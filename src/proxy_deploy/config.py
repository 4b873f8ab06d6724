# config.py
# Module-spec files, resume-state files and environment settings.
#
# Environment (read from .env via python-dotenv, then the process env):
#   CHAIN_RPC_URL   — JSON-RPC endpoint of the deployment gateway
#   CHAIN_API_KEY   — optional bearer token for the gateway
#   DEPLOY_TIMEOUT  — seconds to wait on a single RPC call (default 120)

import json
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from proxy_deploy.errors import ConfigurationError
from proxy_deploy.models import ModuleSpec, ResumeState

load_dotenv()

DEFAULT_TIMEOUT = 120.0


class ModuleFile(BaseModel):
    """Top-level schema of a module-spec file."""

    modules: list[ModuleSpec] = Field(..., min_length=1)


@dataclass(frozen=True)
class Settings:
    rpc_url: str | None
    api_key: str | None
    timeout: float


def load_settings() -> Settings:
    raw_timeout = os.getenv("DEPLOY_TIMEOUT")
    try:
        timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
    except ValueError as exc:
        raise ConfigurationError(f"DEPLOY_TIMEOUT must be a number, got {raw_timeout!r}") from exc
    return Settings(
        rpc_url=os.getenv("CHAIN_RPC_URL"),
        api_key=os.getenv("CHAIN_API_KEY"),
        timeout=timeout,
    )


def _read_json(path: str | Path) -> object:
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid JSON: {exc}") from exc


def load_modules(path: str | Path) -> list[ModuleSpec]:
    """Parse and validate a module-spec file. Raises ConfigurationError."""
    data = _read_json(path)
    try:
        return ModuleFile.model_validate(data).modules
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid module spec file {path}: {exc}") from exc


def load_resume_state(path: str | Path) -> ResumeState:
    data = _read_json(path)
    try:
        return ResumeState.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid resume state file {path}: {exc}") from exc


def write_resume_state(path: str | Path, state: ResumeState) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(state.model_dump_json(indent=2) + "\n", encoding="utf-8")
