"""Utilities for parsing LLM outputs that are almost-JSON."""

import json
import re
from typing import Any, Dict, Iterator, List, Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def _balanced_block(text: str, start: int) -> Optional[str]:
    """Return the object starting at ``text[start] == '{'`` up to its matching brace."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
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


def sanitize_json(text: str) -> str:
    """
    Make near-JSON strictly parseable: raw newlines and tabs inside string
    values become spaces, and trailing commas before a closing bracket are
    dropped. Content outside strings is otherwise left alone.
    """
    out: List[str] = []
    in_string = False
    escaped = False
    length = len(text)
    index = 0
    while index < length:
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            elif char in "\n\r\t":
                char = " "
            out.append(char)
            index += 1
            continue
        if char == '"':
            in_string = True
        elif char == ",":
            lookahead = index + 1
            while lookahead < length and text[lookahead].isspace():
                lookahead += 1
            if lookahead < length and text[lookahead] in "}]":
                index += 1
                continue
        out.append(char)
        index += 1
    return "".join(out)


def _candidates(raw: str) -> Iterator[str]:
    seen = set()
    for match in _FENCE_RE.finditer(raw):
        block = match.group(1).strip()
        if block and block not in seen:
            seen.add(block)
            yield block
    for start, char in enumerate(raw):
        if char != "{":
            continue
        block = _balanced_block(raw, start)
        if block and block not in seen:
            seen.add(block)
            yield block


def _try_parse(candidate: str) -> Optional[Any]:
    for text in (candidate, sanitize_json(candidate)):
        try:
            return json.loads(text)
        except (json.JSONDecodeError, TypeError):
            continue
    return None


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """
    Locate the first well-formed JSON object in free-form model output.

    Handles:
    - fenced ```json blocks (tried first)
    - objects wrapped in prose, found by brace matching
    - trailing commas and raw newlines/tabs inside string values
    """
    if not raw:
        return None
    for candidate in _candidates(raw):
        parsed = _try_parse(candidate)
        if isinstance(parsed, dict):
            return parsed
        if candidate.lstrip().startswith("{"):
            continue
        # A fenced block may hold prose around the object.
        for start, char in enumerate(candidate):
            if char == "{":
                block = _balanced_block(candidate, start)
                parsed = _try_parse(block) if block else None
                if isinstance(parsed, dict):
                    return parsed
    return None
