"""Pagination cursor extraction from ``Link`` response headers.

GitHub paginates collections with a header of the shape::

    <https://api.github.com/x?page=2>; rel="next", <https://api.github.com/x?page=5>; rel="last"

Only the ``next`` relation is surfaced: callers loop on "cursor present or
absent".  A missing header, a header without ``next``, and a malformed header
all mean "no further pages".

The header is read with a small hand-written parser for the grammar::

    links      = link-value *( "," link-value )
    link-value = "<" URI ">" *( ";" param )
    param      = token [ "=" ( token | quoted-string ) ]
"""

from __future__ import annotations

from typing import Optional

_TOKEN_STOP = frozenset(' \t,;="<>')


class _MalformedLink(ValueError):
    pass


class _LinkParser:
    """Single-use recursive-descent parser over one header value."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def parse(self) -> list[tuple[str, str]]:
        links: list[tuple[str, str]] = []
        while True:
            self._skip_ws()
            uri = self._uri()
            params = self._params()
            for rel in params.get("rel", "").split():
                links.append((rel.lower(), uri))
            self._skip_ws()
            if self._pos >= len(self._text):
                return links
            self._expect(",")

    def _uri(self) -> str:
        self._expect("<")
        end = self._text.find(">", self._pos)
        if end < 0:
            raise _MalformedLink("unterminated URI reference")
        uri = self._text[self._pos:end].strip()
        if not uri:
            raise _MalformedLink("empty URI reference")
        self._pos = end + 1
        return uri

    def _params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        while True:
            self._skip_ws()
            if not self._peek(";"):
                return params
            self._pos += 1
            self._skip_ws()
            name = self._token().lower()
            self._skip_ws()
            value = ""
            if self._peek("="):
                self._pos += 1
                self._skip_ws()
                value = self._quoted() if self._peek('"') else self._token()
            # RFC 8288: only the first occurrence of a parameter counts.
            params.setdefault(name, value)

    def _token(self) -> str:
        start = self._pos
        while self._pos < len(self._text) and self._text[self._pos] not in _TOKEN_STOP:
            self._pos += 1
        if self._pos == start:
            raise _MalformedLink(f"expected token at offset {start}")
        return self._text[start:self._pos]

    def _quoted(self) -> str:
        self._pos += 1
        chars: list[str] = []
        while self._pos < len(self._text):
            ch = self._text[self._pos]
            self._pos += 1
            if ch == "\\" and self._pos < len(self._text):
                chars.append(self._text[self._pos])
                self._pos += 1
            elif ch == '"':
                return "".join(chars)
            else:
                chars.append(ch)
        raise _MalformedLink("unterminated quoted string")

    def _skip_ws(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos] in " \t":
            self._pos += 1

    def _peek(self, ch: str) -> bool:
        return self._text.startswith(ch, self._pos)

    def _expect(self, ch: str) -> None:
        if not self._peek(ch):
            raise _MalformedLink(f"expected {ch!r} at offset {self._pos}")
        self._pos += 1


def parse_link_header(value: Optional[str]) -> dict[str, str]:
    """Map each relation type in a ``Link`` header to its URI.

    The first link carrying a given relation wins.  A missing or malformed
    header yields an empty mapping.

    Args:
        value: The raw header value, or ``None`` when the header is absent.

    Returns:
        A ``dict`` such as ``{"next": "...", "last": "..."}``.
    """
    if not value or not value.strip():
        return {}
    try:
        pairs = _LinkParser(value).parse()
    except _MalformedLink:
        return {}
    links: dict[str, str] = {}
    for rel, uri in pairs:
        links.setdefault(rel, uri)
    return links


def parse_next_link(value: Optional[str]) -> Optional[str]:
    """Return the ``rel="next"`` URI of a ``Link`` header, or ``None``.

    Example::

        >>> parse_next_link('<https://api.example.com/x?page=2>; rel="next", '
        ...                 '<https://api.example.com/x?page=5>; rel="last"')
        'https://api.example.com/x?page=2'
    """
    return parse_link_header(value).get("next")
