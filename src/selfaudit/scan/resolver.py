"""Class-name resolution against the method catalog.

Resolution is purely lexical: the current namespace, the file's ``use``
aliases and the innermost open type are the only context. Inheritance is not
followed, so ``parent`` never resolves.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping

_RE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RE_USE_CLAUSE = re.compile(r"^\\?([^\s]+?)(?:\s+as\s+([A-Za-z_][A-Za-z0-9_]*))?$", re.IGNORECASE)


def is_identifier(value: str) -> bool:
    return _RE_IDENTIFIER.match(value) is not None


def decode_string_literal(text: str) -> str:
    """Value of a constant string token (quotes removed, escapes applied).

    Only ``\\\\`` and the escaped quote character are unescaped, which is
    all that matters for class and method names.
    """
    if len(text) < 2 or text[0] not in "'\"" or text[-1] != text[0]:
        return text.strip("'\"")
    quote = text[0]
    body = text[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body) and body[i + 1] in ("\\", quote):
            out.append(body[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def parse_use_statement(statement: str) -> dict[str, str]:
    """Map aliases to FQNs for one ``use`` statement body (without ``use``/``;``).

    Handles comma lists, ``as`` aliases and group syntax (``A\\{B, C as D}``).
    Function and constant imports are ignored.
    """
    text = " ".join(statement.split())
    if re.match(r"^(function|const)\s", text, re.IGNORECASE):
        return {}

    clauses: list[str]
    if "{" in text:
        prefix, _, rest = text.partition("{")
        prefix = prefix.strip().rstrip("\\")
        clauses = [f"{prefix}\\{c.strip()}" for c in rest.rstrip("} ").split(",") if c.strip()]
    else:
        clauses = [c.strip() for c in text.split(",") if c.strip()]

    aliases: dict[str, str] = {}
    for clause in clauses:
        match = _RE_USE_CLAUSE.match(clause)
        if match is None:
            continue
        fqn = match.group(1).lstrip("\\")
        alias = match.group(2) or fqn.rsplit("\\", 1)[-1]
        if alias:
            aliases[alias] = fqn
    return aliases


class NameResolver:
    """Resolve class references written in source to cataloged FQNs."""

    def __init__(self, catalog: Collection[str], short_names: Mapping[str, list[str]]) -> None:
        self._catalog = catalog
        self._short_names = short_names

    def resolve(
        self,
        name: str,
        namespace: str,
        uses: Mapping[str, str],
        current_type: str | None,
    ) -> str | None:
        """Resolve a class reference such as ``Foo``, ``Sub\\Foo``, ``\\A\\Foo`` or ``self``."""
        trimmed = name.lstrip("\\")
        lower = trimmed.lower()
        if lower in ("self", "static"):
            return current_type
        if not trimmed or lower == "parent":
            return None
        return self._lookup(trimmed, namespace, uses, None)

    def resolve_string(
        self,
        value: str,
        namespace: str,
        uses: Mapping[str, str],
        current_type: str | None,
    ) -> str | None:
        """Resolve a class name held in a string literal.

        Besides the regular order this also tries the namespace of the
        innermost open type, and ``'__CLASS__'`` means that type itself.
        """
        if value == "__CLASS__":
            return current_type
        trimmed = value.lstrip("\\")
        if not trimmed:
            return None
        type_namespace = current_type.rpartition("\\")[0] if current_type else None
        return self._lookup(trimmed, namespace, uses, type_namespace)

    def _lookup(
        self,
        name: str,
        namespace: str,
        uses: Mapping[str, str],
        type_namespace: str | None,
    ) -> str | None:
        if name in self._catalog:
            return name

        if "\\" in name:
            first, _, rest = name.partition("\\")
            if first in uses:
                candidate = f"{uses[first]}\\{rest}"
                if candidate in self._catalog:
                    return candidate
            if namespace:
                candidate = f"{namespace}\\{name}"
                if candidate in self._catalog:
                    return candidate
            return None

        aliased = uses.get(name)
        if aliased is not None and aliased in self._catalog:
            return aliased
        if namespace:
            candidate = f"{namespace}\\{name}"
            if candidate in self._catalog:
                return candidate
        if type_namespace:
            candidate = f"{type_namespace}\\{name}"
            if candidate in self._catalog:
                return candidate

        # Ambiguous short names stay unresolved
        matches = self._short_names.get(name, [])
        if len(matches) == 1:
            return matches[0]
        return None
