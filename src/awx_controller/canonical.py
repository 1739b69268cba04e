"""Canonical form for structured text fields.

Fields such as ``extra_vars`` or credential ``inputs`` hold nested
configuration as opaque text that users may write as JSON or YAML. AWX
stores and echoes them in its own formatting, so comparing raw text would
report drift on every whitespace or key-order difference.

The canonical form is compact JSON with sorted keys. Text that cannot be
parsed is returned unchanged: the remote service then rejects it with its
own message instead of this layer hiding the problem.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def canonicalize(text: Any) -> Any:
    """Return the canonical JSON form of a JSON or YAML document.

    Args:
        text: The structured text. Non-string values (None, or an already
            decoded mapping) are passed through unchanged unless they are a
            mapping or list, which are serialized directly.

    Returns:
        Compact JSON with lexicographically sorted keys, the empty string for
        blank input, or the original value when it does not parse.
    """
    if isinstance(text, dict | list):
        return _dump(text, original=text)
    if not isinstance(text, str):
        return text
    if not text.strip():
        return ""

    # Strict JSON first: canonical output must parse back to the same value
    try:
        parsed = json.loads(text)
    except ValueError:
        try:
            parsed = yaml.safe_load(text)
        except yaml.YAMLError:
            logger.debug("Structured text did not parse, leaving it unchanged")
            return text

    return _dump(parsed, original=text)


def _dump(value: Any, original: Any) -> Any:
    try:
        # Keys become JSON strings first so they sort the same on every pass
        keyed = json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError):
        # YAML timestamps, NaN and non-scalar keys have no JSON form
        logger.debug("Structured text has no JSON representation, leaving it unchanged")
        return original
    return json.dumps(keyed, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def is_equivalent(left: Any, right: Any) -> bool:
    """Compare two structured text values by canonical form."""
    return canonicalize(_blank_to_empty(left)) == canonicalize(_blank_to_empty(right))


def _blank_to_empty(value: Any) -> Any:
    return "" if value is None else value
