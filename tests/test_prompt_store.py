from __future__ import annotations

import pytest

from cacheprobe.services.prompt_store import render_prompt


def test_render_prompt_substitutes_base_url():
    prompt = render_prompt("investigator.initial_prompt", base_url="https://example.com")

    assert "https://example.com" in prompt
    assert "$base_url" not in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="base_url"):
        render_prompt("investigator.initial_prompt")


def test_render_prompt_rejects_non_string_entry():
    with pytest.raises(TypeError):
        render_prompt("investigator")
