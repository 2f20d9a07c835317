from __future__ import annotations

import os
import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"", "0", "false", "no", "off"})

_BYTE_UNITS: dict[str, int] = {
    "b": 1,
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
}
_BYTE_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-z]*)\s*$", re.IGNORECASE)


class AuthMode(str, Enum):
    NONE = "none"
    BASIC = "basic"
    TOKEN = "token"


class ValidationLevel(str, Enum):
    STRICT = "strict"
    SOFT = "soft"
    SKIP = "skip"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class BasicAuthConfig(_Frozen):
    username: str | None = Field(default=None)
    password: str | None = Field(default=None)


class TokenAuthConfig(_Frozen):
    secret: str | None = Field(default=None)


class AuthConfig(_Frozen):
    enabled: bool = Field(default=False)
    mode: AuthMode = Field(default=AuthMode.NONE)
    basic: BasicAuthConfig = Field(default_factory=BasicAuthConfig)
    token: TokenAuthConfig = Field(default_factory=TokenAuthConfig)


class RenderConfig(_Frozen):
    """Options forwarded to the mjml compiler on every render.

    ``beautify`` and ``minify`` are accepted for compatibility with older clients
    but mjml 4 ignores them.
    """

    keep_comments: bool = Field(default=True)
    beautify: bool = Field(default=False, description="Deprecated; ignored by mjml >= 4")
    minify: bool = Field(default=False, description="Deprecated; ignored by mjml >= 4")
    validation_level: ValidationLevel = Field(default=ValidationLevel.SOFT)

    def to_mjml_options(self) -> dict[str, Any]:
        return {
            "keepComments": self.keep_comments,
            "beautify": self.beautify,
            "minify": self.minify,
            "validationLevel": self.validation_level.value,
        }


class LoggingConfig(_Frozen):
    level: str = Field(default="INFO")
    file: str | None = Field(default=None, description="Optional rotating log file path")
    max_size_mb: int = Field(
        default=10, ge=1, description="Max size of a log file in MB before rolling."
    )
    backup_count: int = Field(default=5, ge=1, description="Number of log archives to keep.")


class CompilerConfig(_Frozen):
    node_path: str = Field(default="node", description="node executable name or path")
    node_modules: str | None = Field(
        default=None,
        description="Directory containing the mjml package; prepended to NODE_PATH",
    )
    timeout_seconds: float = Field(default=30.0, gt=0)
    mjml_version: str | None = Field(
        default=None, description="Reported compiler version; queried from node if omitted"
    )


class ServiceConfig(_Frozen):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=80, ge=1, le=65535)
    max_body: int = Field(default=1024**2, ge=0, description="Max request body in bytes")
    render: RenderConfig = Field(default_factory=RenderConfig)
    authentication: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    compiler: CompilerConfig = Field(default_factory=CompilerConfig)

    @field_validator("max_body", mode="before")
    @classmethod
    def _parse_max_body(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_byte_size(value)
        return value

    def redacted(self) -> dict[str, Any]:
        """Config as a plain dict with secrets masked, for startup logging."""

        payload = self.model_dump(mode="json")
        auth = payload["authentication"]
        if auth["basic"].get("password"):
            auth["basic"]["password"] = "***"
        if auth["token"].get("secret"):
            auth["token"]["secret"] = "***"
        return payload


def parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {raw!r}")


def parse_byte_size(raw: str) -> int:
    """Parse a human byte size such as ``"1mb"``, ``"10b"`` or ``"512 KB"``.

    Units are 1024-based. A bare number is a byte count.
    """

    m = _BYTE_SIZE_RE.match(raw or "")
    if m is None:
        raise ValueError(f"Invalid byte size: {raw!r}")

    number, unit = m.group(1), (m.group(2).lower() or "b")
    if unit not in _BYTE_UNITS:
        raise ValueError(f"Unknown byte size unit {unit!r} in {raw!r}")
    return int(float(number) * _BYTE_UNITS[unit])


def parse_auth_mode(raw: str | None) -> AuthMode:
    # Unknown values fall back to no authentication.
    value = (raw or "").strip().lower()
    if value == AuthMode.TOKEN.value:
        return AuthMode.TOKEN
    if value == AuthMode.BASIC.value:
        return AuthMode.BASIC
    return AuthMode.NONE


def _env_config(env: Mapping[str, str]) -> dict[str, Any]:
    def get(name: str) -> str | None:
        value = env.get(name)
        return value if value not in (None, "") else None

    data: dict[str, Any] = {
        "render": {},
        "authentication": {"basic": {}, "token": {}},
        "logging": {},
        "compiler": {},
    }

    if (host := get("HOST")) is not None:
        data["host"] = host
    if (port := get("PORT")) is not None:
        data["port"] = int(port)
    if (max_body := get("MAX_BODY")) is not None:
        data["max_body"] = parse_byte_size(max_body)

    render = data["render"]
    if (keep := get("KEEP_COMMENTS")) is not None:
        render["keep_comments"] = parse_bool(keep)
    if (beautify := get("BEAUTIFY")) is not None:
        render["beautify"] = parse_bool(beautify)
    if (minify := get("MINIFY")) is not None:
        render["minify"] = parse_bool(minify)
    if (level := get("VALIDATION_LEVEL")) is not None:
        render["validation_level"] = level.strip().lower()

    auth = data["authentication"]
    if (enabled := get("AUTH_ENABLED")) is not None:
        auth["enabled"] = parse_bool(enabled)
    if get("AUTH_TYPE") is not None:
        auth["mode"] = parse_auth_mode(get("AUTH_TYPE"))
    if (username := get("BASIC_AUTH_USERNAME")) is not None:
        auth["basic"]["username"] = username
    if (password := get("BASIC_AUTH_PASSWORD")) is not None:
        auth["basic"]["password"] = password
    if (secret := get("AUTH_TOKEN")) is not None:
        auth["token"]["secret"] = secret

    if (log_level := get("LOG_LEVEL")) is not None:
        data["logging"]["level"] = log_level.upper()
    if (log_file := get("LOG_FILE")) is not None:
        data["logging"]["file"] = log_file

    compiler = data["compiler"]
    if (node_path := get("MJML_NODE_PATH")) is not None:
        compiler["node_path"] = node_path
    if (node_modules := get("MJML_NODE_MODULES")) is not None:
        compiler["node_modules"] = node_modules
    if (timeout := get("MJML_TIMEOUT")) is not None:
        compiler["timeout_seconds"] = float(timeout)
    if (version := get("MJML_VERSION")) is not None:
        compiler["mjml_version"] = version

    return data


def _deep_merge(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_service_config(
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ServiceConfig:
    """Build the service configuration from the environment plus explicit overrides.

    - Environment variables (HOST, PORT, MAX_BODY, AUTH_*, ...) provide the base values.
    - ``overrides`` is a nested mapping shaped like ``ServiceConfig``; it wins.
    - Validation is performed by Pydantic.
    """

    env = os.environ if environ is None else environ
    raw = _env_config(env)
    if overrides:
        raw = _deep_merge(raw, overrides)
    return ServiceConfig.model_validate(raw)
