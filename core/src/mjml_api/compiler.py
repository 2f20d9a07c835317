from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from mjml_api.config import CompilerConfig, RenderConfig

logger = logging.getLogger(__name__)

BRIDGE_SCRIPT = Path(__file__).resolve().parent / "mjml_bridge.js"


@dataclass(frozen=True)
class Diagnostic:
    line: int
    message: str
    tag_name: str
    formatted_message: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Diagnostic:
        line = payload.get("line")
        return cls(
            line=int(line) if isinstance(line, int | float) else 0,
            message=str(payload.get("message") or ""),
            tag_name=str(payload.get("tagName") or ""),
            formatted_message=str(payload.get("formattedMessage") or ""),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "line": self.line,
            "message": self.message,
            "tagName": self.tag_name,
            "formattedMessage": self.formatted_message,
        }


@dataclass(frozen=True)
class CompileOutput:
    html: str
    errors: list[Diagnostic] = field(default_factory=list)


class CompileError(Exception):
    """The compiler rejected the document (e.g. strict validation failed)."""

    def __init__(self, message: str, errors: list[Diagnostic] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])

    def to_details(self) -> dict[str, Any]:
        return {"errors": [e.to_payload() for e in self.errors]}


class CompilerUnavailable(RuntimeError):
    """The compiler process could not be run or returned garbage."""


class Compiler(Protocol):
    @property
    def version(self) -> str: ...

    def compile(self, document: str, config: RenderConfig) -> CompileOutput: ...


def _parse_errors(raw: Any) -> list[Diagnostic]:
    if not isinstance(raw, list):
        return []
    return [Diagnostic.from_payload(x) for x in raw if isinstance(x, dict)]


def parse_bridge_output(stdout: str) -> CompileOutput:
    """Turn the bridge's JSON reply into a result or a ``CompileError``."""

    out = (stdout or "").strip()
    if not out:
        raise CompilerUnavailable("mjml bridge produced empty output")

    try:
        parsed = json.loads(out)
    except json.JSONDecodeError as e:
        raise CompilerUnavailable("mjml bridge output was not valid JSON") from e

    if not isinstance(parsed, dict):
        raise CompilerUnavailable("mjml bridge output was not a JSON object")

    if parsed.get("ok") is True:
        html = parsed.get("html")
        return CompileOutput(
            html=html if isinstance(html, str) else "",
            errors=_parse_errors(parsed.get("errors")),
        )

    error = parsed.get("error")
    if not isinstance(error, dict):
        raise CompilerUnavailable("mjml bridge reported failure without details")
    raise CompileError(
        str(error.get("message") or "mjml compilation failed"),
        _parse_errors(error.get("errors")),
    )


class NodeMjmlCompiler:
    """Compile MJML by running the ``mjml`` npm package through node.

    Each call spawns ``node mjml_bridge.js`` and exchanges JSON on stdin/stdout.
    """

    def __init__(self, config: CompilerConfig, *, bridge_script: Path = BRIDGE_SCRIPT) -> None:
        self._config = config
        self._bridge_script = bridge_script
        self._version: str | None = config.mjml_version
        self._version_lock = threading.Lock()

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        # node resolves require() from the script location, not the working directory.
        node_modules = (self._config.node_modules or "").strip()
        if not node_modules:
            node_modules = str(Path.cwd() / "node_modules")

        existing = env.get("NODE_PATH")
        env["NODE_PATH"] = os.pathsep.join([node_modules, existing]) if existing else node_modules
        return env

    def _run(self, args: list[str], stdin: str | None) -> str:
        cmd = [self._config.node_path, str(self._bridge_script), *args]
        try:
            proc = subprocess.run(
                cmd,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                env=self._env(),
                timeout=self._config.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise CompilerUnavailable(
                f"node executable not found: {self._config.node_path}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CompilerUnavailable(
                f"mjml bridge timed out after {self._config.timeout_seconds}s"
            ) from e

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            logger.error(f"mjml bridge exited with code {proc.returncode}: {stderr}")
            raise CompilerUnavailable(f"mjml bridge exited with code {proc.returncode}")
        return proc.stdout or ""

    @property
    def version(self) -> str:
        with self._version_lock:
            if self._version is None:
                self._version = self._query_version()
            return self._version

    def _query_version(self) -> str:
        out = self._run(["--version"], stdin=None).strip()
        try:
            parsed = json.loads(out)
        except json.JSONDecodeError as e:
            raise CompilerUnavailable("mjml bridge version output was not valid JSON") from e
        version = parsed.get("version") if isinstance(parsed, dict) else None
        if not isinstance(version, str) or not version:
            raise CompilerUnavailable("mjml bridge did not report a version")
        return version

    def compile(self, document: str, config: RenderConfig) -> CompileOutput:
        request = json.dumps({"mjml": document, "options": config.to_mjml_options()})
        return parse_bridge_output(self._run([], stdin=request))
