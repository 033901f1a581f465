# app/config.py

import os
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from dotenv import dotenv_values

from agents.routing import RoutingStrategy

DEFAULT_LLM_URL = "http://localhost:8080"
DEFAULT_LLM_TIMEOUT = 300.0
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8000
DEFAULT_WS_HOST = "localhost"
DEFAULT_WS_PORT = 8765
DEFAULT_ROUTING = "intent"

_TRUE = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """An AGENTDESK_* variable holds a value that cannot be used."""


@dataclass
class Settings:
    llm_url: str = DEFAULT_LLM_URL
    llm_timeout: float = DEFAULT_LLM_TIMEOUT
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    ws_host: str = DEFAULT_WS_HOST
    ws_port: int = DEFAULT_WS_PORT
    routing: str = DEFAULT_ROUTING
    session_ttl: Optional[float] = None
    log_level: str = "INFO"
    verbose: bool = False

    @property
    def ws_uri(self) -> str:
        return f"ws://{self.ws_host}:{self.ws_port}"

    @classmethod
    def from_env(cls, env_files: Optional[Iterable[str]] = None) -> "Settings":
        """
        Read AGENTDESK_* variables.

        dotenv files (default: ./.env) fill in what the process environment
        does not set; later files override earlier ones.
        """
        overrides: Dict[str, str] = {}
        for candidate in env_files if env_files is not None else (".env",):
            path = os.path.abspath(candidate)
            if os.path.isfile(path):
                overrides.update({k: v for k, v in dotenv_values(path).items() if v is not None})

        def lookup(key: str, default: Optional[str] = None) -> Optional[str]:
            name = f"AGENTDESK_{key}"
            value = os.environ.get(name, overrides.get(name))
            if value is None or not value.strip():
                return default
            return value.strip()

        ttl = _number(lookup, "SESSION_TTL", float, None)
        if ttl is not None and ttl < 0:
            raise ConfigError(f"AGENTDESK_SESSION_TTL must be zero or positive, got {ttl:g}")

        routing = lookup("ROUTING", DEFAULT_ROUTING)
        try:
            routing = RoutingStrategy.parse(routing).value
        except ValueError:
            choices = ", ".join(s.value for s in RoutingStrategy)
            raise ConfigError(f"AGENTDESK_ROUTING must be one of {choices}, got {routing!r}")

        return cls(
            llm_url=lookup("LLM_URL", DEFAULT_LLM_URL),
            llm_timeout=_number(lookup, "LLM_TIMEOUT", float, DEFAULT_LLM_TIMEOUT),
            api_host=lookup("API_HOST", DEFAULT_API_HOST),
            api_port=_number(lookup, "API_PORT", int, DEFAULT_API_PORT),
            ws_host=lookup("WS_HOST", DEFAULT_WS_HOST),
            ws_port=_number(lookup, "WS_PORT", int, DEFAULT_WS_PORT),
            routing=routing,
            session_ttl=ttl,
            log_level=lookup("LOG_LEVEL", "INFO").upper(),
            verbose=lookup("VERBOSE", "false").lower() in _TRUE,
        )


def _number(lookup: Callable[..., Optional[str]], key: str, kind: type, default):
    raw = lookup(key)
    if raw is None:
        return default
    try:
        return kind(raw)
    except ValueError:
        raise ConfigError(f"AGENTDESK_{key} must be {kind.__name__}, got {raw!r}")
