"""Tests for the tutor CLI."""

import os
import tempfile

import yaml
from click.testing import CliRunner

from tutor.cli import main


def invoke(*args):
    return CliRunner().invoke(main, list(args))


def test_version():
    result = invoke("--version")
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_tokens():
    result = invoke("tokens", "Hi")
    assert result.exit_code == 0
    assert "2 tokens" in result.output


def test_cost_for_one_model():
    result = invoke("cost", "1000", "500", "--model", "claude-3-5-haiku-20241022")
    assert result.exit_code == 0
    assert "0.002800" in result.output


def test_filter_blocks_phone_number():
    result = invoke("filter", "Call 555-123-4567 now", "--age", "ages6to9")
    assert result.exit_code == 0
    assert "blocked" in result.output
    assert "[personal information removed]" in result.output


def test_sanitize_keeps_placeholder_visible():
    result = invoke("sanitize", "Visit https://example.com today", "--age", "ages6to9")
    assert result.exit_code == 0
    assert "[website link removed]" in result.output


def test_prompt():
    result = invoke(
        "prompt", "--age", "ages10to13", "--subject", "math", "--topic", "fractions",
        "--need", "step-by-step", "--interest", "sports",
    )
    assert result.exit_code == 0
    assert "SAFETY GUIDELINES" in result.output
    assert "max_tokens=260" in result.output


def test_complexity():
    data = yaml.safe_dump(
        {
            "child_id": "c1",
            "session_id": "s1",
            "age_group": "ages6to9",
            "subject": "art",
            "topic": "colors",
            "history": [{"role": "user", "content": "Hi"}],
        }
    )
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "context.yaml")
        with open(path, "w") as f:
            f.write(data)
        result = invoke("complexity", path)
    assert result.exit_code == 0
    assert "simple" in result.output
    assert "claude-3-5-haiku-20241022" in result.output


def test_ask_without_api_key_falls_back(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    result = invoke("ask", "What is a fraction?")
    assert result.exit_code == 0
    assert "fallback" in result.output
