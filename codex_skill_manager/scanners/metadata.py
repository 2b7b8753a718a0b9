"""Metadata extraction for `SKILL.md` files.

Name and description come from a line-oriented frontmatter grammar with a
markdown fallback (first `# ` heading, first plain paragraph line). Any other
frontmatter keys are parsed separately with PyYAML, best-effort.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import yaml

FRONTMATTER_DELIMITER = "---"
_STANDARD_KEYS = {"name", "description"}


def parse_metadata(markdown: str) -> Tuple[Optional[str], Optional[str]]:
    """Extract `(name, description)` from a `SKILL.md` document.

    Either value is `None` when neither the frontmatter nor the markdown
    fallback provides it.
    """
    lines = markdown.splitlines()
    name: Optional[str] = None
    description: Optional[str] = None

    block = _frontmatter_lines(lines)
    if block is not None:
        for line in block:
            parsed = _parse_frontmatter_line(line)
            if parsed is None:
                continue
            key, value = parsed
            if key == "name":
                name = value
            elif key == "description":
                description = value

    if name is None or description is None:
        body = lines[len(block) + 2:] if block is not None else lines
        fallback_name, fallback_description = _parse_markdown_fallback(body)
        if name is None:
            name = fallback_name
        if description is None:
            description = fallback_description

    return name, description


def format_title(title: str) -> str:
    """Turn a slug like `my-skill_name` into `My Skill Name`."""
    normalized = title.replace("-", " ").replace("_", " ")
    return " ".join(word.capitalize() for word in normalized.split(" ") if word)


def strip_frontmatter(markdown: str) -> str:
    """Drop a leading `---` block (delimiters included), if it is closed."""
    lines = markdown.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return markdown

    for index in range(1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            return "".join(lines[index + 1:])
    return markdown


def parse_frontmatter_extra(markdown: str) -> Dict[str, Any]:
    """Parse non-standard frontmatter keys (version, license, ...) with YAML."""
    block = _frontmatter_lines(markdown.splitlines())
    if not block:
        return {}

    try:
        data = yaml.safe_load("\n".join(block))
    except yaml.YAMLError:
        return {}

    if not isinstance(data, dict):
        return {}

    extra = {str(k): v for k, v in data.items() if str(k) not in _STANDARD_KEYS}
    return _json_safe(extra)


def _frontmatter_lines(lines: List[str]) -> Optional[List[str]]:
    """Lines between the opening `---` and the closing one (or EOF)."""
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return None

    block: List[str] = []
    for line in lines[1:]:
        if line.strip() == FRONTMATTER_DELIMITER:
            break
        block.append(line)
    return block


def _parse_frontmatter_line(line: str) -> Optional[Tuple[str, str]]:
    if ":" not in line:
        return None
    key, raw_value = line.split(":", 1)
    value = raw_value.strip().strip("\"'")
    return key.strip(), value


def _parse_markdown_fallback(lines: List[str]) -> Tuple[Optional[str], Optional[str]]:
    title: Optional[str] = None
    description: Optional[str] = None

    for raw in lines:
        line = raw.strip()
        if title is None and line.startswith("# "):
            title = line[2:].strip()
        elif description is None and line and not line.startswith("#"):
            description = line
            break

    return title, description


def _json_safe(value: Any) -> Any:
    """Convert a value to JSON-serializable primitives."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    return str(value)
