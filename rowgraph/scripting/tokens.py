"""Placeholder token scanning for ``#{...}`` and ``${...}``.

A backslash before the open token escapes it; a backslash before the
close token inside a placeholder keeps the close token literally.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping


class TokenParser:
    """Replaces every ``open ... close`` placeholder with ``handler(content)``."""

    def __init__(self, open_token: str, close_token: str, handler: Callable[[str], str]) -> None:
        self.open_token = open_token
        self.close_token = close_token
        self.handler = handler

    def parse(self, text: str | None) -> str:
        if not text:
            return ""
        start = text.find(self.open_token)
        if start == -1:
            return text
        out: list[str] = []
        offset = 0
        while start > -1:
            if start > 0 and text[start - 1] == "\\":
                out.append(text[offset : start - 1])
                out.append(self.open_token)
                offset = start + len(self.open_token)
            else:
                out.append(text[offset:start])
                offset = start + len(self.open_token)
                expression: list[str] = []
                end = text.find(self.close_token, offset)
                while end > -1:
                    if end > offset and text[end - 1] == "\\":
                        expression.append(text[offset : end - 1])
                        expression.append(self.close_token)
                        offset = end + len(self.close_token)
                        end = text.find(self.close_token, offset)
                    else:
                        expression.append(text[offset:end])
                        break
                if end == -1:
                    out.append(text[start:])
                    offset = len(text)
                else:
                    out.append(self.handler("".join(expression)))
                    offset = end + len(self.close_token)
            start = text.find(self.open_token, offset)
        if offset < len(text):
            out.append(text[offset:])
        return "".join(out)


def substitute_variables(text: str | None, variables: Mapping[str, str]) -> str:
    """Replace ``${key}`` with ``variables[key]``, leaving unknown keys untouched."""
    if not text or not variables:
        return text or ""

    def _lookup(key: str) -> str:
        if key in variables:
            return str(variables[key])
        return "${" + key + "}"

    return TokenParser("${", "}", _lookup).parse(text)


def has_placeholder(text: str, open_token: str = "${", close_token: str = "}") -> bool:
    """True when *text* contains at least one unescaped placeholder."""
    found = False

    def _mark(content: str) -> str:
        nonlocal found
        found = True
        return ""

    TokenParser(open_token, close_token, _mark).parse(text)
    return found
