from __future__ import annotations

import shutil

import pytest
from fastapi.testclient import TestClient

from mjml_api.compiler import CompilerUnavailable, NodeMjmlCompiler
from mjml_api.config import CompilerConfig


def _mjml_available() -> bool:
    if shutil.which("node") is None:
        return False
    try:
        return bool(NodeMjmlCompiler(CompilerConfig()).version)
    except CompilerUnavailable:
        return False


pytestmark = pytest.mark.skipif(not _mjml_available(), reason="node + mjml not installed")


@pytest.fixture
def client(make_client):
    compiler = NodeMjmlCompiler(CompilerConfig())
    with make_client(compiler=compiler, render={"validation_level": "strict"}) as c:
        yield c


def test_renders_valid_mjml(client: TestClient, hello_world: str) -> None:
    r = client.post("/v1/render", json={"mjml": hello_world})
    assert r.status_code == 200
    body = r.json()
    assert "<!doctype html>" in body["html"]
    assert body["mjml"] == hello_world
    assert body["mjml_version"]
    assert body["errors"] == []


def test_illegal_attribute_returns_500(client: TestClient) -> None:
    r = client.post("/v1/render", json={"mjml": "<mj-text foo=bar>hello</mj-text>"})
    assert r.status_code == 500
    body = r.json()
    assert body["message"] == "Failed to compile mjml"
    assert len(body["errors"]) == 1
    assert body["errors"][0]["line"] == 1
    assert body["errors"][0]["tagName"] == "mj-text"
    assert body["errors"][0]["message"] == "Attribute foo is illegal"


def test_legacy_payload(client: TestClient, hello_world: str) -> None:
    r = client.post("/v1/render", content=hello_world, headers={"Content-Type": ""})
    assert r.status_code == 200
    assert "<!doctype html>" in r.json()["html"]
    assert r.json()["errors"] == []
