from __future__ import annotations

import json

import pytest

from mjml_api.body import interpret_body

DOC = "<mjml><mj-body><mj-text>Hi</mj-text></mj-body></mjml>"


def test_json_payload_uses_mjml_field() -> None:
    assert interpret_body(json.dumps({"mjml": DOC}).encode("utf-8")) == DOC


def test_legacy_payload_is_used_verbatim() -> None:
    assert interpret_body(DOC.encode("utf-8")) == DOC


@pytest.mark.parametrize(
    "raw",
    [
        b'{"mjml": ',
        b'"just a json string"',
        b"[1, 2, 3]",
        b'{"other": "field"}',
        b'{"mjml": 42}',
        b"",
    ],
)
def test_non_document_json_falls_back_to_raw_text(raw: bytes) -> None:
    assert interpret_body(raw) == raw.decode("utf-8")


def test_invalid_utf8_does_not_raise() -> None:
    text = interpret_body(b"<mjml>\xff</mjml>")
    assert text.startswith("<mjml>")
    assert text.endswith("</mjml>")


def test_deeply_nested_json_does_not_raise() -> None:
    raw = b"[" * 100_000 + b"]" * 100_000
    assert interpret_body(raw) == raw.decode("ascii")
