"""YAML front-matter detection and extraction for markdown content.

Front matter is a YAML block fenced by ``---`` lines at the very start of a
document::

    ---
    title: Hello
    tags: [a, b]
    ---
    # Body starts here
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

_FRONT_MATTER_RE = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(?P<yaml>.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)


@dataclass
class FrontMatter:
    attrs: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    front_matter: str = ""

    def attrs_json(self) -> str:
        return json.dumps(self.attrs, default=str)

    def to_json(self) -> str:
        """Full parse result (attrs, body and raw YAML) as a JSON object."""
        return json.dumps(
            {"attrs": self.attrs, "body": self.body, "front_matter": self.front_matter},
            default=str,
        )


def has_front_matter(text: str | None) -> bool:
    """True if ``text`` starts with a fenced front-matter block."""
    return bool(text) and _FRONT_MATTER_RE.match(text) is not None


def extract(text: str) -> FrontMatter:
    """Split ``text`` into parsed YAML attributes and the remaining body.

    Raises:
        ValueError: If there is no front-matter block, or it does not hold a mapping.
        yaml.YAMLError: If the block is not valid YAML.
    """
    match = _FRONT_MATTER_RE.match(text)
    if match is None:
        raise ValueError("No front matter found")
    raw = match.group("yaml")
    attrs = yaml.safe_load(raw) if raw.strip() else {}
    if attrs is None:
        attrs = {}
    if not isinstance(attrs, dict):
        raise ValueError(f"Front matter must be a mapping, got {type(attrs).__name__}")
    return FrontMatter(attrs=attrs, body=text[match.end():], front_matter=raw.rstrip("\r\n"))
