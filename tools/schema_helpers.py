#!/usr/bin/env python3
"""
schema_helpers.py - Small helpers shared by the protocol generator modules

Diagnostics go to stderr with a level tag. XML helpers hide the ElementTree details the
generator needs (comments, child lists, boolean attributes) and the text
helpers format comment blocks and padded table cells.
"""

import sys
import textwrap
from typing import List, Optional
from xml.etree.ElementTree import Element

_quiet = False


def set_quiet(quiet: bool) -> None:
    """Suppress [WARN] output on stderr (warnings are still collected)."""
    global _quiet
    _quiet = quiet


def log_info(msg: str) -> None:
    print(f"[INFO] {msg}", file=sys.stderr)


def log_warn(msg: str) -> None:
    if not _quiet:
        print(f"[WARN] {msg}", file=sys.stderr)


def get_comment(element: Element) -> str:
    """Return the comment attribute of an element with whitespace collapsed."""
    return ' '.join(element.get('comment', '').split())


def get_attribute(element: Element, name: str, default: str = '') -> str:
    return element.get(name, default).strip()


def attribute_is_true(element: Element, name: str) -> bool:
    return 'true' in element.get(name, '').lower()


def child_elements(element: Element, tag: Optional[str] = None) -> List[Element]:
    """Direct children of element, optionally only those with the given tag."""
    if tag is None:
        return list(element)
    return [child for child in element if child.tag == tag]


def output_long_comment(prefix: str, comment: str, width: int = 80) -> str:
    """
    Wrap a comment so that every line starts with prefix and stays within
    width columns. The result carries no trailing linefeed.
    """
    if not comment:
        return prefix

    lines = textwrap.wrap(comment, width=max(width - len(prefix) - 1, 20))
    return '\n'.join(f"{prefix} {line}" for line in lines)


def spaced_string(text: str, spacing: int) -> str:
    """Pad text with spaces on the right to spacing characters."""
    return text.ljust(spacing)
