from __future__ import annotations

from mjml_api import __main__ as entrypoint
from mjml_api.config import ValidationLevel


def test_cli_flags_override_environment(monkeypatch) -> None:
    captured: dict = {}

    def _fake_run(app, **kwargs):
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setattr(entrypoint.uvicorn, "run", _fake_run)
    monkeypatch.setattr(entrypoint, "load_dotenv", lambda: None)
    monkeypatch.setattr(entrypoint, "configure_logging", lambda config: None)
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("VALIDATION_LEVEL", "soft")

    entrypoint.main(
        [
            "--port",
            "9999",
            "--validation-level",
            "strict",
            "--no-keep-comments",
            "--max-body",
            "2kb",
        ]
    )

    assert captured["port"] == 9999
    config = captured["app"].state.service_config
    assert config.render.validation_level is ValidationLevel.STRICT
    assert config.render.keep_comments is False
    assert config.max_body == 2048


def test_overrides_from_args_empty_when_no_flags() -> None:
    args = entrypoint.build_parser().parse_args([])
    assert entrypoint.overrides_from_args(args) == {}
