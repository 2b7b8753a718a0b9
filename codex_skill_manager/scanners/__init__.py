"""Scanner modules for skill folders and their metadata"""

from .metadata import format_title, parse_frontmatter_extra, parse_metadata, strip_frontmatter
from .skills import SKILL_FILENAME, SkillScanner, find_skill_root, read_text_lenient

__all__ = [
    "SkillScanner",
    "find_skill_root",
    "read_text_lenient",
    "SKILL_FILENAME",
    "parse_metadata",
    "parse_frontmatter_extra",
    "format_title",
    "strip_frontmatter",
]
