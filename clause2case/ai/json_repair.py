"""
Clause2Case
Bounded JSON self-repair for model output.

A single left-to-right pass over the text that tracks string/escape state
and a brace/bracket stack, and fixes the mistakes generative models make
most often:

    - missing commas between adjacent values or object members
    - duplicate commas and trailing commas before a closer
    - truncated output: an unterminated string and unclosed containers

Text inside strings is never touched. Valid JSON comes back unchanged.

Usage:
    from clause2case.ai.json_repair import repair_json
    data = json.loads(repair_json(raw_text))
"""

import logging

logger = logging.getLogger(__name__)

_CLOSER = {"{": "}", "[": "]"}
_OPENER = {"}": "{", "]": "["}
_LITERAL_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789+-.")

# Kinds of the last significant token emitted
_OPEN = "open"
_COMMA = "comma"
_COLON = "colon"
_KEY = "key"
_VALUE = "value"


def repair_json(text: str) -> str:
    """
    Return ``text`` with structural JSON mistakes fixed.

    The result is not guaranteed to parse (e.g. a missing colon is left
    alone); callers re-parse once and treat a second failure as fatal.
    """
    out: list[str] = []
    stack: list[str] = []
    last = None
    last_comma_at = -1
    in_string = False
    escape = False
    string_role = _VALUE
    fixes = 0

    def container():
        return stack[-1] if stack else None

    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if in_string:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
                last = string_role
            i += 1
            continue

        if ch.isspace():
            out.append(ch)
            i += 1
            continue

        if ch == '"':
            if container() == "{":
                if last == _VALUE:
                    out.append(",")
                    fixes += 1
                    string_role = _KEY
                elif last in (None, _OPEN, _COMMA):
                    string_role = _KEY
                else:
                    string_role = _VALUE
            else:
                if last == _VALUE and container() == "[":
                    out.append(",")
                    fixes += 1
                string_role = _VALUE
            in_string = True
            out.append(ch)
            i += 1
            continue

        if ch in "{[":
            if last == _VALUE and container() == "[":
                out.append(",")
                fixes += 1
            stack.append(ch)
            out.append(ch)
            last = _OPEN
            i += 1
            continue

        if ch in "}]":
            if last == _COMMA and last_comma_at >= 0:
                del out[last_comma_at]
                last_comma_at = -1
                fixes += 1
            opener = _OPENER[ch]
            if stack and stack[-1] != opener and opener in stack:
                # close inner containers the model forgot
                while stack[-1] != opener:
                    out.append(_CLOSER[stack.pop()])
                    fixes += 1
            if stack and stack[-1] == opener:
                stack.pop()
            out.append(ch)
            last = _VALUE
            i += 1
            continue

        if ch == ",":
            if last in (_COMMA, _OPEN):
                fixes += 1
                i += 1
                continue
            last_comma_at = len(out)
            out.append(ch)
            last = _COMMA
            i += 1
            continue

        if ch == ":":
            out.append(ch)
            last = _COLON
            i += 1
            continue

        if ch in _LITERAL_CHARS:
            if last == _VALUE and container() == "[":
                out.append(",")
                fixes += 1
            j = i
            while j < n and text[j] in _LITERAL_CHARS:
                j += 1
            out.append(text[i:j])
            last = _VALUE
            i = j
            continue

        out.append(ch)
        i += 1

    # ── Truncated output ─────────────────────────────────────────────────
    if in_string:
        if escape and out and out[-1] == "\\":
            out.pop()
        out.append('"')
        last = string_role
        fixes += 1
    if last == _COMMA and last_comma_at >= 0:
        del out[last_comma_at]
        fixes += 1
    elif last == _COLON:
        out.append("null")
        fixes += 1
    elif last == _KEY:
        out.append(":null")
        fixes += 1
    while stack:
        out.append(_CLOSER[stack.pop()])
        fixes += 1

    if fixes:
        logger.debug("JSON repair applied %d fix(es)", fixes)
    return "".join(out)
