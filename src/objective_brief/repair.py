"""Best-effort repair of JSON embedded in model text."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import json_repair

from .errors import JsonRepairError

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\n?|\n?```", re.IGNORECASE)
# C0 controls, DEL, and C1 controls.
CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x1f\x7f-\x9f]")


@dataclass
class RepairResult:
    value: Any = None
    error: str | None = None
    repaired: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise JsonRepairError(self.error)
        return self.value


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_PATTERN.sub("", text)


def strip_control_chars(text: str) -> str:
    return CONTROL_CHAR_PATTERN.sub("", text)


def clean_model_text(text: str) -> str:
    """Drop markdown fences and control characters, then trim."""
    return strip_control_chars(strip_code_fences(text)).strip()


def repair_json(text: str | None) -> RepairResult:
    """
    Parse ``text`` as JSON, retrying once on the cleaned text.

    The retry hands the cleaned text to json_repair, which also recovers
    trailing commas, unquoted keys and truncated containers. Only an array
    or object counts as a successful repair.

    Never raises; the outcome (value or error message) is carried by the
    returned RepairResult.
    """
    if text is None:
        return RepairResult(error="no text to parse")
    try:
        return RepairResult(value=json.loads(text))
    except json.JSONDecodeError:
        pass

    cleaned = clean_model_text(text)
    if not cleaned:
        return RepairResult(error="text is empty after repair", repaired=True)
    value = json_repair.repair_json(cleaned, return_objects=True)
    if not isinstance(value, (list, dict)):
        return RepairResult(
            error=f"invalid JSON after repair: no array or object in {cleaned[:80]!r}",
            repaired=True,
        )
    return RepairResult(value=value, repaired=True)
