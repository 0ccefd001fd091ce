"""Prompt catalog lookup.

Prompts live in ``cacheprobe/prompts/prompts.json`` as nested objects. Callers
address them with dotted keys such as ``investigator.system_prompt`` and fill
``$placeholders`` through ``string.Template``.
"""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Any

CATALOG_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


@lru_cache(maxsize=1)
def load_catalog() -> dict[str, Any]:
    catalog = json.loads(CATALOG_PATH.read_text(encoding="utf-8"))
    if not isinstance(catalog, dict):
        raise ValueError(f"{CATALOG_PATH.name} must contain a JSON object")
    return catalog


def lookup(key: str) -> str:
    node: Any = load_catalog()
    for segment in key.split("."):
        try:
            node = node[segment]
        except (KeyError, TypeError):
            raise KeyError(f"Unknown prompt: {key}") from None
    if not isinstance(node, str):
        raise TypeError(f"Prompt {key} is a section, not a template")
    return node


def render_prompt(key: str, **values: Any) -> str:
    template = Template(lookup(key))
    try:
        return template.substitute(values)
    except KeyError as exc:
        raise KeyError(f"Prompt {key} needs a value for ${exc.args[0]}") from exc
