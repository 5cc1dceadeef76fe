"""Utilities for loading the prompt definitions used by the insight pipelines."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, Mapping

_PROMPT_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class MasterPrompt:
    """A fixed system instruction plus the template for the user turn."""

    id: str
    variant: str
    prompt_version: str
    label: str
    system_template: str
    user_template: str

    @property
    def normalized_variant(self) -> str:
        return self.variant.lower()

    def render_user(self, **fields: str) -> str:
        return self.user_template.format(**fields)


def _load_prompt(path: Path) -> MasterPrompt:
    payload = json.loads(path.read_text(encoding="utf-8"))
    required = {
        "id",
        "variant",
        "prompt_version",
        "label",
        "system_template",
        "user_template",
    }
    missing = sorted(required - payload.keys())
    if missing:
        raise ValueError(f"Prompt file {path.name} missing keys: {', '.join(missing)}")
    system_template = payload["system_template"]
    if isinstance(system_template, list):
        system_template = "\n".join(str(line) for line in system_template)
    return MasterPrompt(
        id=str(payload["id"]),
        variant=str(payload["variant"]),
        prompt_version=str(payload["prompt_version"]),
        label=str(payload["label"]),
        system_template=str(system_template),
        user_template=str(payload["user_template"]),
    )


def _iter_prompt_files(directory: Path) -> Iterable[Path]:
    for path in sorted(directory.glob("*.json")):
        if path.is_file():
            yield path


@lru_cache(maxsize=4)
def load_prompts(directory: Path | None = None) -> Mapping[str, MasterPrompt]:
    base_dir = Path(directory) if directory else Path(os.getenv("PROMPT_DIR") or _PROMPT_DIR)
    prompts: Dict[str, MasterPrompt] = {}
    for file_path in _iter_prompt_files(base_dir):
        prompt = _load_prompt(file_path)
        key = prompt.normalized_variant
        if key in prompts:
            raise ValueError(f"Duplicate prompt variant detected: {prompt.variant}")
        prompts[key] = prompt
    if not prompts:
        raise RuntimeError(f"No prompt definitions found in {base_dir}")
    return prompts


def get_prompt(variant: str) -> MasterPrompt:
    prompts = load_prompts()
    key = str(variant).lower()
    if key not in prompts:
        raise KeyError(f"Unknown prompt variant '{variant}'. Available: {', '.join(sorted(prompts))}")
    return prompts[key]


__all__ = ["MasterPrompt", "load_prompts", "get_prompt"]
