"""YAML front-matter parsing for view content."""

from typing import cast

import yaml

# Type aliases for YAML front-matter data
type YAMLPrimitive = str | int | float | bool | None
type YAMLKey = str | int | float | bool
type YAMLValue = YAMLPrimitive | list[YAMLValue] | dict[YAMLKey, YAMLValue]
type YAMLFrontmatter = dict[str, YAMLValue]

_FENCE = "---"


def _strip_leading_newline(text: str) -> str:
    if text.startswith("\r\n"):
        return text[2:]
    if text.startswith("\n"):
        return text[1:]
    return text


def has_frontmatter(content: str) -> bool:
    """Return True if ``content`` opens with a front-matter fence."""
    return content.startswith(_FENCE) and content.find(f"\n{_FENCE}", len(_FENCE)) != -1


def parse_frontmatter(content: str) -> tuple[YAMLFrontmatter, str]:
    """Split YAML front matter from the body of a template.

    Args:
        content: The raw template content, possibly opening with a ``---``
            fenced YAML block.

    Returns:
        A tuple of (front-matter dict, body content). The dict is empty and
        the content is returned unchanged when no valid front-matter block is
        found. The newline following the closing fence is dropped; the rest of
        the body is kept as-is.
    """
    if not content.startswith(_FENCE):
        return {}, content

    # The closing fence must start a line
    end_marker = content.find(f"\n{_FENCE}", len(_FENCE))
    if end_marker == -1:
        return {}, content

    frontmatter_str = content[len(_FENCE) : end_marker].strip()
    body = _strip_leading_newline(content[end_marker + 1 + len(_FENCE) :])

    if not frontmatter_str:
        return {}, body

    try:
        frontmatter_data = yaml.safe_load(frontmatter_str)  # pyright: ignore[reportAny]
    except yaml.YAMLError:
        return {}, content

    if not isinstance(frontmatter_data, dict):
        return {}, content

    # yaml.safe_load produces string keys at top level for front matter
    return cast("YAMLFrontmatter", frontmatter_data), body
