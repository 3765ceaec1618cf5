"""Single-pass ``${key}`` token substitution.

A placeholder is ``${`` followed by a key and the first ``}``. The key is
taken verbatim. Replacement values are inserted as-is and never re-scanned,
so a value containing ``${...}`` is emitted literally.

Resolvers are either a mapping or a callable returning ``None`` for keys it
does not know. An unresolved key raises :class:`UnresolvedTokenError`;
wrap a resolver with :func:`passthrough` to keep unknown placeholders
verbatim instead (useful for shell scripts that use ``${var}`` syntax).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Union

from imagepack.errors import UnresolvedTokenError

TOKEN_START = "${"
TOKEN_END = "}"

Lookup = Callable[[str], Union[str, None]]
Resolver = Union[Mapping[str, str], Lookup]


def _as_lookup(resolver: Resolver) -> Lookup:
    if isinstance(resolver, Mapping):
        return resolver.get
    return resolver


def substitute(template: str, resolver: Resolver) -> str:
    """Replace every ``${key}`` placeholder in ``template``.

    Args:
        template: Text containing placeholders.
        resolver: Mapping or callable providing replacement values.

    Returns:
        The rendered text.

    Raises:
        UnresolvedTokenError: If a key has no replacement.
    """
    lookup = _as_lookup(resolver)
    out: list[str] = []
    pos = 0
    while True:
        start = template.find(TOKEN_START, pos)
        if start < 0:
            break
        end = template.find(TOKEN_END, start + len(TOKEN_START))
        if end < 0:
            # Unterminated placeholder is copied literally
            break
        key = template[start + len(TOKEN_START) : end]
        value = lookup(key)
        if value is None:
            raise UnresolvedTokenError(key)
        out.append(template[pos:start])
        out.append(value)
        pos = end + len(TOKEN_END)
    out.append(template[pos:])
    return "".join(out)


def find_tokens(template: str) -> list[str]:
    """List placeholder keys in order of appearance."""
    keys: list[str] = []
    pos = 0
    while True:
        start = template.find(TOKEN_START, pos)
        if start < 0:
            return keys
        end = template.find(TOKEN_END, start + len(TOKEN_START))
        if end < 0:
            return keys
        keys.append(template[start + len(TOKEN_START) : end])
        pos = end + len(TOKEN_END)


def layered(*resolvers: Resolver) -> Lookup:
    """Build a resolver that tries each layer in turn."""
    lookups = [_as_lookup(r) for r in resolvers]

    def lookup(key: str) -> str | None:
        for layer in lookups:
            value = layer(key)
            if value is not None:
                return value
        return None

    return lookup


def passthrough(resolver: Resolver) -> Lookup:
    """Wrap a resolver so unknown keys render as their original placeholder."""
    inner = _as_lookup(resolver)

    def lookup(key: str) -> str:
        value = inner(key)
        return TOKEN_START + key + TOKEN_END if value is None else value

    return lookup


__all__ = ["Resolver", "find_tokens", "layered", "passthrough", "substitute"]
