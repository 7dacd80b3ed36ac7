from __future__ import annotations

from fastapi import FastAPI
import uvicorn

from scripts import run_api


def test_run_api_serves_app_on_configured_bind(monkeypatch) -> None:
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "9100")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    run_api.main()

    [(app, kwargs)] = calls
    assert isinstance(app, FastAPI)
    assert kwargs == {"host": "127.0.0.1", "port": 9100, "log_level": "info"}
