from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import yaml
from dotenv import load_dotenv

from .errors import ValidationError
from .prompting import AspectRatio

FUSION_POLICIES = ("all_or_nothing", "best_effort")
DEFAULT_API_KEY_ENV = ("GEMINI_API_KEY", "API_KEY", "GOOGLE_API_KEY")


@dataclass
class ModelsConfig:
    style_model: str = "gemini-2.5-flash"
    fusion_model: str = "gemini-2.5-flash-image"


@dataclass
class FusionConfig:
    variants: int = 4
    policy: str = "all_or_nothing"
    default_aspect_ratio: str = AspectRatio.SQUARE.value

    def __post_init__(self) -> None:
        self.variants = int(self.variants)
        if self.variants < 1:
            raise ValueError("fusion.variants must be at least 1")
        self.policy = str(self.policy).strip().lower()
        if self.policy not in FUSION_POLICIES:
            raise ValueError(
                f"fusion.policy must be one of {', '.join(FUSION_POLICIES)}; got {self.policy!r}"
            )
        try:
            self.default_aspect_ratio = AspectRatio.parse(self.default_aspect_ratio).value
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc


@dataclass
class ClientConfig:
    api_key_env: tuple[str, ...] = DEFAULT_API_KEY_ENV
    timeout_ms: Optional[int] = None


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    session_cookie: str = "style_fusion_session"
    refresh_seconds: int = 2
    max_upload_bytes: int = 20 * 1024 * 1024


@dataclass
class LoggingConfig:
    level: str = "INFO"
    logfile: Optional[Path] = None


@dataclass
class AppConfig:
    models: ModelsConfig = field(default_factory=ModelsConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, path: Optional[Path] = None) -> "AppConfig":
        models_data = _section(raw, "models")
        fusion_data = _section(raw, "fusion")
        client_data = _section(raw, "client")
        server_data = _section(raw, "server")
        logging_data = _section(raw, "logging")

        models = ModelsConfig(
            style_model=str(models_data.get("style", models_data.get("style_model", ModelsConfig.style_model))),
            fusion_model=str(
                models_data.get("fusion", models_data.get("fusion_model", ModelsConfig.fusion_model))
            ),
        )

        fusion = FusionConfig(
            variants=fusion_data.get("variants", 4),
            policy=fusion_data.get("policy", "all_or_nothing"),
            default_aspect_ratio=str(fusion_data.get("aspect_ratio", AspectRatio.SQUARE.value)),
        )

        env_names = client_data.get("api_key_env", DEFAULT_API_KEY_ENV)
        if isinstance(env_names, str):
            env_names = (env_names,)
        timeout = client_data.get("timeout_ms")
        client = ClientConfig(
            api_key_env=tuple(str(name) for name in env_names if str(name).strip()),
            timeout_ms=int(timeout) if timeout not in (None, "") else None,
        )

        server = ServerConfig(
            host=str(server_data.get("host", ServerConfig.host)),
            port=int(server_data.get("port", ServerConfig.port)),
            session_cookie=str(server_data.get("session_cookie", ServerConfig.session_cookie)),
            refresh_seconds=int(server_data.get("refresh_seconds", ServerConfig.refresh_seconds)),
            max_upload_bytes=int(
                server_data.get("max_upload_mb", ServerConfig.max_upload_bytes / (1024 * 1024)) * 1024 * 1024
            ),
        )

        logging_cfg = LoggingConfig(
            level=str(logging_data.get("level", "INFO")).upper(),
            logfile=_optional_path(logging_data.get("logfile"), base=path.parent if path else None),
        )

        return cls(
            models=models,
            fusion=fusion,
            client=client,
            server=server,
            logging=logging_cfg,
            path=path,
        )

    def apply_overrides(
        self,
        *,
        aspect_ratio: Optional[str] = None,
        policy: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        log_level: Optional[str] = None,
    ) -> None:
        if aspect_ratio is not None:
            self.fusion.default_aspect_ratio = AspectRatio.parse(aspect_ratio).value
        if policy is not None:
            self.fusion = FusionConfig(
                variants=self.fusion.variants,
                policy=policy,
                default_aspect_ratio=self.fusion.default_aspect_ratio,
            )
        if host is not None:
            self.server.host = host
        if port is not None:
            self.server.port = int(port)
        if log_level is not None:
            self.logging.level = log_level.upper()


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Read a YAML or JSON(C) file; a missing ``path`` yields defaults."""

    if path is None:
        return AppConfig()
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".json", ".jsonc"}:
        data = json.loads(_strip_json_comments(text))
    else:
        data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return AppConfig.from_dict(data, path=path.resolve())


def resolve_api_key(config: AppConfig, *, env_file: Optional[Path] = None) -> str:
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()
    for name in config.client.api_key_env:
        value = os.getenv(name)
        if value:
            return value
    names = ", ".join(config.client.api_key_env) or "GEMINI_API_KEY"
    raise RuntimeError(f"No API key found; set one of: {names}")


def _strip_json_comments(payload: str) -> str:
    result: list[str] = []
    length = len(payload)
    i = 0
    in_string = False
    escape = False
    while i < length:
        ch = payload[i]
        if in_string:
            result.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif ch == "/" and i + 1 < length and payload[i + 1] == "/":
            while i < length and payload[i] not in "\r\n":
                i += 1
            continue
        elif ch == "/" and i + 1 < length and payload[i + 1] == "*":
            end = payload.find("*/", i + 2)
            i = length if end == -1 else end + 2
            continue
        result.append(ch)
        i += 1
    return "".join(result)


def _section(raw: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key, {})
    return dict(value) if isinstance(value, Mapping) else {}


def _optional_path(value: Any, *, base: Optional[Path] = None) -> Path | None:
    if value in (None, "", False):
        return None
    candidate = Path(str(value))
    if base is not None and not candidate.is_absolute():
        return base / candidate
    return candidate


__all__: Sequence[str] = [
    "AppConfig",
    "ClientConfig",
    "FusionConfig",
    "LoggingConfig",
    "ModelsConfig",
    "ServerConfig",
    "FUSION_POLICIES",
    "load_config",
    "resolve_api_key",
]
