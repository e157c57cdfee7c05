"""
Two-stage parsing of the vision backend's free-text answer.

Stage one parses the whole text as JSON. Stage two extracts the first
balanced ``{...}`` object and parses that. The result is tagged, so callers
decide what a malformed answer means; the parser itself never raises.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

MAX_FALLBACK_BYTES = 10000


@dataclass(frozen=True)
class Parsed:
    verdict: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Malformed:
    reason: str
    raw: str = ""


ParseResult = Union[Parsed, Malformed]


def extract_first_object(text: str, limit: int = MAX_FALLBACK_BYTES) -> Optional[str]:
    """Returns the first balanced {...} substring, or None if there is none within ``limit`` chars"""
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, min(len(text), start + limit)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def parse_verdict(text: Any) -> ParseResult:
    if not isinstance(text, str) or not text.strip():
        return Malformed("empty response")

    # 1) Strict parse of the whole text
    try:
        value = json.loads(text)
        if isinstance(value, dict):
            return Parsed(value)
    except json.JSONDecodeError:
        pass

    # 2) First balanced object, size-capped
    candidate = extract_first_object(text)
    if candidate is None:
        return Malformed("no JSON object found", text[:200])
    if len(candidate.encode("utf-8")) >= MAX_FALLBACK_BYTES:
        return Malformed("embedded JSON object too large", text[:200])
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        return Malformed("embedded object is not valid JSON", text[:200])
    if not isinstance(value, dict):
        return Malformed("embedded value is not an object", text[:200])
    return Parsed(value)
