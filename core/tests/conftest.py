from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

from mjml_api.app import create_app
from mjml_api.compiler import CompileError, CompileOutput, Compiler, Diagnostic
from mjml_api.config import RenderConfig, ServiceConfig, ValidationLevel

_ATTR_RE = re.compile(r"<(mj-[a-z-]+)\s+(\w+)=")

HELLO_WORLD = """
<mjml>
  <mj-body>
    <mj-section>
      <mj-column>
        <mj-text>
          Hello World!
        </mj-text>
      </mj-column>
    </mj-section>
  </mj-body>
</mjml>"""


class FakeCompiler:
    """Deterministic stand-in for mjml.

    Any ``<mj-* attr=...>`` is an illegal attribute. Under strict validation that
    fails the compile, otherwise it is reported as a diagnostic.
    """

    version = "4.15.3"

    def __init__(self) -> None:
        self.calls: list[tuple[str, RenderConfig]] = []

    def compile(self, document: str, config: RenderConfig) -> CompileOutput:
        self.calls.append((document, config))

        errors = [
            Diagnostic(
                line=document[: m.start()].count("\n") + 1,
                message=f"Attribute {m.group(2)} is illegal",
                tag_name=m.group(1),
                formatted_message=f"Line 1 ({m.group(1)}) Attribute {m.group(2)} is illegal",
            )
            for m in _ATTR_RE.finditer(document)
        ]
        if config.validation_level is ValidationLevel.SKIP:
            errors = []
        if errors and config.validation_level is ValidationLevel.STRICT:
            raise CompileError("ValidationError", errors)

        html = f"<!doctype html><html><!-- {len(document)} --></html>"
        return CompileOutput(html=html, errors=errors)


@pytest.fixture
def fake_compiler() -> FakeCompiler:
    return FakeCompiler()


@pytest.fixture
def hello_world() -> str:
    return HELLO_WORLD


@pytest.fixture
def make_client(fake_compiler: FakeCompiler) -> Callable[..., TestClient]:
    """Build a TestClient from ``ServiceConfig`` overrides; the fake compiler by default."""

    def _make(*, compiler: Compiler | None = None, **config: Any) -> TestClient:
        service_config = ServiceConfig.model_validate(config)
        return TestClient(create_app(service_config, compiler=compiler or fake_compiler))

    return _make
