from __future__ import annotations

import json

import main
from cacheprobe.config import settings
from fakes import ScriptedOracle, completion, turn


def test_main_rejects_non_http_url(capsys):
    assert main.main(["ftp://example.com"]) == 1
    assert "Only HTTP/HTTPS URLs are supported" in capsys.readouterr().err


def test_main_requires_api_key(monkeypatch, capsys):
    monkeypatch.setattr(settings, "oracle_provider", "anthropic")
    monkeypatch.setattr(settings, "anthropic_api_key", "")

    assert main.main(["https://example.com"]) == 1
    assert "ANTHROPIC_API_KEY required" in capsys.readouterr().err


def test_main_prints_json_result(monkeypatch, capsys):
    oracle = ScriptedOracle([turn(completion(summary="Cache looks healthy"))])
    monkeypatch.setattr(main, "get_oracle", lambda **kwargs: oracle)

    assert main.main(["https://example.com", "--json", "--max-iterations", "3"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["state"] == "completed"
    assert output["iterations"] == 1
    assert output["summary"]["final_analysis"] == "Cache looks healthy"
    assert output["memory"]["discovered_urls"] == ["https://example.com"]


def test_main_prints_text_report(monkeypatch, capsys):
    oracle = ScriptedOracle([turn(completion())])
    monkeypatch.setattr(main, "get_oracle", lambda **kwargs: oracle)

    assert main.main(["https://example.com"]) == 0

    out = capsys.readouterr().out
    assert "Target: https://example.com" in out
    assert "Completed in 1 iterations" in out


def test_main_does_not_send_other_providers_key(monkeypatch, capsys):
    monkeypatch.setattr(settings, "oracle_provider", "anthropic")
    monkeypatch.setattr(settings, "anthropic_api_key", "sk-ant-secret")
    monkeypatch.setattr(settings, "openrouter_api_key", "")

    assert main.main(["https://example.com", "--provider", "openrouter", "--max-iterations", "0", "--json"]) == 1
    assert "OPENROUTER_API_KEY required" in capsys.readouterr().err


def test_main_passes_only_explicit_key_to_oracle(monkeypatch, capsys):
    monkeypatch.setattr(settings, "anthropic_api_key", "sk-ant-secret")
    captured = {}

    def fake_get_oracle(**kwargs):
        captured.update(kwargs)
        return ScriptedOracle([turn(completion())])

    monkeypatch.setattr(main, "get_oracle", fake_get_oracle)

    assert main.main(["https://example.com", "--provider", "openrouter", "--json"]) == 0
    assert captured["provider"] == "openrouter"
    assert captured["api_key"] is None


def test_main_verbose_prints_agent_actions(monkeypatch, capsys):
    oracle = ScriptedOracle([turn(completion())])
    monkeypatch.setattr(main, "get_oracle", lambda **kwargs: oracle)

    assert main.main(["https://example.com", "-v"]) == 0

    assert "[>] Action: complete_analysis" in capsys.readouterr().out
