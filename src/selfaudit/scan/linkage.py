"""Linkage phase: link every cataloged method to its call sites.

The catalog comes from ``inventory.json``. Every source file (plus the
configured entry files) is tokenized again and walked once; at each token
that can start a call site the walker classifies it as a ``CallSiteKind``
and hands it to ``_record``, the single place where a target is checked
against the catalog. Unresolved targets are dropped silently.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from selfaudit.config.models import LinkageConfig, SelfAuditConfig
from selfaudit.core.artifacts import INVENTORY, LINKAGE, InventoryDoc, load_artifact, write_artifact
from selfaudit.core.errors import ArtifactError
from selfaudit.core.logging import get_logger
from selfaudit.core.state import AuditStateStore
from selfaudit.scan.inventory import discover_files, read_namespace, read_source, relative_path
from selfaudit.scan.models import CallReference, CallSiteKind, LinkageEntry
from selfaudit.scan.resolver import (
    NameResolver,
    decode_string_literal,
    is_identifier,
    parse_use_statement,
)
from selfaudit.scan.tokenizer import (
    NAME_KINDS,
    Token,
    TokenKind,
    next_significant,
    prev_significant,
    tokenize,
)

log = get_logger("linkage")

_CLASS_REF_KINDS = NAME_KINDS | {TokenKind.STATIC}
_TYPE_KEYWORDS = frozenset({TokenKind.CLASS, TokenKind.INTERFACE, TokenKind.TRAIT})


@dataclass(slots=True)
class _Marker:
    """A class seen just before a possible method-name string."""

    type_name: str
    index: int


@dataclass(slots=True)
class _Frame:
    type_name: str | None
    depth: int


@dataclass
class _FileState:
    rel_path: str
    lines: list[str]
    namespace: str = ""
    uses: dict[str, str] = field(default_factory=dict)
    depth: int = 0
    top_depth: int = 0  # depth of top-level statements (inside a braced namespace: 1)
    namespace_brace: bool = False
    stack: list[_Frame] = field(default_factory=list)
    pending: str | None = None
    pending_anonymous: bool = False
    markers: list[_Marker] = field(default_factory=list)

    @property
    def current_type(self) -> str | None:
        return self.stack[-1].type_name if self.stack else None

    def context(self, line: int) -> str:
        line = max(line, 1)
        return self.lines[line - 1].strip() if line <= len(self.lines) else ""


class LinkageAnalyzer:
    """Accumulates call references for a fixed method catalog."""

    def __init__(
        self,
        entries: list[LinkageEntry],
        config: LinkageConfig | None = None,
        *,
        type_names: Iterable[str] = (),
    ) -> None:
        self._config = config or LinkageConfig()
        self._entries = entries
        # type -> method -> entry; types without callable methods stay resolvable
        self._methods: dict[str, dict[str, LinkageEntry]] = {name: {} for name in type_names}
        for entry in entries:
            self._methods.setdefault(entry.type_name, {}).setdefault(entry.method, entry)
        short_names: dict[str, list[str]] = defaultdict(list)
        for type_name in self._methods:
            short_names[type_name.rsplit("\\", 1)[-1]].append(type_name)
        self._resolver = NameResolver(self._methods, dict(short_names))

    @property
    def entries(self) -> list[LinkageEntry]:
        return self._entries

    def analyze(self, rel_path: str, code: str) -> None:
        """Scan one file and record every resolvable call site."""
        tokens = tokenize(code)
        state = _FileState(rel_path=rel_path, lines=code.split("\n"))
        count = len(tokens)
        i = 0
        while i < count:
            token = tokens[i]
            kind = token.kind

            if kind is TokenKind.PUNCT:
                if token.text == "[":
                    self._array_callable(tokens, i, state)
                elif token.text == "{":
                    self._open_brace(state)
                elif token.text == "}":
                    self._close_brace(state)
            elif kind is TokenKind.NAMESPACE:
                state.namespace, i = read_namespace(tokens, i)
                state.uses = {}
                state.namespace_brace = i < count and tokens[i].is_punct("{")
                continue
            elif kind is TokenKind.USE and self._is_import(tokens, i, state):
                i = self._use_statement(tokens, i, state)
            elif kind in _TYPE_KEYWORDS:
                self._type_keyword(tokens, i, state)
            elif kind is TokenKind.CLASS_C:
                if state.current_type is not None:
                    state.markers.append(_Marker(state.current_type, i))
            elif kind is TokenKind.DOUBLE_COLON:
                self._double_colon(tokens, i, state)
            elif kind is TokenKind.OBJECT_OPERATOR:
                self._instance_call(tokens, i, state)
            elif kind is TokenKind.CONSTANT_STRING:
                self._string_literal(tokens, i, state)
            i += 1

    # -------------------------------------------------------------------------
    # Structure tracking
    # -------------------------------------------------------------------------

    def _open_brace(self, state: _FileState) -> None:
        if state.namespace_brace:
            state.namespace_brace = False
            state.depth += 1
            state.top_depth = state.depth
            return
        if state.pending is not None or state.pending_anonymous:
            state.stack.append(_Frame(state.pending, state.depth))
            state.pending = None
            state.pending_anonymous = False
        state.depth += 1

    def _close_brace(self, state: _FileState) -> None:
        state.depth -= 1
        if state.stack and state.stack[-1].depth >= state.depth:
            state.stack.pop()
        if state.depth < state.top_depth:
            state.top_depth = state.depth

    def _is_import(self, tokens: list[Token], index: int, state: _FileState) -> bool:
        if state.depth != state.top_depth:
            return False
        # closure `function () use ($x)`
        prev = prev_significant(tokens, index - 1)
        return prev is None or not tokens[prev].is_punct(")")

    def _use_statement(self, tokens: list[Token], index: int, state: _FileState) -> int:
        parts: list[str] = []
        j = index + 1
        while j < len(tokens) and not tokens[j].is_punct(";"):
            parts.append(tokens[j].text)
            j += 1
        state.uses.update(parse_use_statement("".join(parts)))
        return j

    def _type_keyword(self, tokens: list[Token], index: int, state: _FileState) -> None:
        prev = prev_significant(tokens, index - 1)
        prev_kind = tokens[prev].kind if prev is not None else None
        if prev_kind is TokenKind.DOUBLE_COLON:
            return
        if prev_kind is TokenKind.NEW:
            state.pending_anonymous = True
            return
        name = next_significant(tokens, index + 1)
        if name is not None and tokens[name].kind is TokenKind.IDENTIFIER:
            short_name = tokens[name].text
            state.pending = f"{state.namespace}\\{short_name}" if state.namespace else short_name

    # -------------------------------------------------------------------------
    # Call sites
    # -------------------------------------------------------------------------

    def _class_reference(self, tokens: list[Token], colon_index: int, state: _FileState) -> str | None:
        prev = prev_significant(tokens, colon_index - 1)
        if prev is None or tokens[prev].kind not in _CLASS_REF_KINDS:
            return None
        return self._resolver.resolve(tokens[prev].text, state.namespace, state.uses, state.current_type)

    def _double_colon(self, tokens: list[Token], index: int, state: _FileState) -> None:
        target = self._class_reference(tokens, index, state)
        member = next_significant(tokens, index + 1)
        if member is None:
            return
        if tokens[member].kind is TokenKind.CLASS:
            if target is not None:
                state.markers.append(_Marker(target, index))
            return
        if tokens[member].kind is not TokenKind.IDENTIFIER or target is None:
            return
        paren = next_significant(tokens, member + 1)
        if paren is not None and tokens[paren].is_punct("("):
            self._record(CallSiteKind.STATIC_CALL, target, tokens[member].text, tokens[member].line, state)

    def _instance_call(self, tokens: list[Token], index: int, state: _FileState) -> None:
        prev = prev_significant(tokens, index - 1)
        if prev is None or tokens[prev].kind is not TokenKind.VARIABLE or tokens[prev].text != "$this":
            return
        member = next_significant(tokens, index + 1)
        if member is None or tokens[member].kind is not TokenKind.IDENTIFIER:
            return
        paren = next_significant(tokens, member + 1)
        if paren is None or not tokens[paren].is_punct("("):
            return
        if state.current_type is not None:
            self._record(CallSiteKind.INSTANCE_CALL, state.current_type, tokens[member].text, tokens[member].line, state)

    def _array_callable(self, tokens: list[Token], index: int, state: _FileState) -> None:
        """``[Type::class, 'method']``"""
        indices: list[int] = []
        cursor = index
        for _ in range(5):
            nxt = next_significant(tokens, cursor + 1)
            if nxt is None:
                return
            indices.append(nxt)
            cursor = nxt
        name, colon, klass, comma, method = (tokens[k] for k in indices)
        if (
            name.kind not in _CLASS_REF_KINDS
            or colon.kind is not TokenKind.DOUBLE_COLON
            or klass.kind is not TokenKind.CLASS
            or not comma.is_punct(",")
            or method.kind is not TokenKind.CONSTANT_STRING
        ):
            return
        method_name = decode_string_literal(method.text)
        if not is_identifier(method_name):
            return
        target = self._resolver.resolve(name.text, state.namespace, state.uses, state.current_type)
        if target is not None:
            self._record(CallSiteKind.ARRAY_CALLABLE, target, method_name, method.line, state)

    def _string_literal(self, tokens: list[Token], index: int, state: _FileState) -> None:
        token = tokens[index]
        value = decode_string_literal(token.text)
        if not value:
            return

        if "::" in value:
            type_part, _, method_part = value.partition("::")
            target = self._resolver.resolve_string(type_part, state.namespace, state.uses, state.current_type)
            if target is not None:
                self._record(CallSiteKind.STRING_CALLABLE, target, method_part, token.line, state)
            return

        target = self._resolver.resolve_string(value, state.namespace, state.uses, state.current_type)
        if target is not None:
            state.markers.append(_Marker(target, index))
            return

        if not is_identifier(value):
            return
        if self._pair_with_marker(value, index, token.line, state):
            return
        if state.current_type is not None and self._follows_this(tokens, index):
            self._record(CallSiteKind.CALLABLE, state.current_type, value, token.line, state)

    def _pair_with_marker(self, method: str, index: int, line: int, state: _FileState) -> bool:
        window = self._config.callable_window
        for pos in range(len(state.markers) - 1, -1, -1):
            marker = state.markers[pos]
            if index - marker.index > window:
                del state.markers[pos]
                continue
            if self._record(CallSiteKind.CALLABLE, marker.type_name, method, line, state, dedup_only=False):
                del state.markers[pos]
                return True
        return False

    def _follows_this(self, tokens: list[Token], index: int) -> bool:
        """True if ``$this`` precedes the string, skipping ``[ , ( =>`` and trivia."""
        lookback = self._config.this_lookback
        for back in range(index - 1, max(index - 1 - lookback, -1), -1):
            token = tokens[back]
            if token.is_trivia or token.is_punct("[", ",", "(") or token.kind is TokenKind.DOUBLE_ARROW:
                continue
            return token.kind is TokenKind.VARIABLE and token.text == "$this"
        return False

    def _record(
        self,
        kind: CallSiteKind,
        type_name: str,
        method: str,
        line: int,
        state: _FileState,
        *,
        dedup_only: bool = True,
    ) -> bool:
        """Record a reference if ``type_name::method`` is cataloged.

        Returns whether the target matched the catalog (with ``dedup_only``
        False) or whether a new reference was stored.
        """
        entry = self._methods.get(type_name, {}).get(method)
        if entry is None:
            return False
        line = max(line, 1)
        added = entry.add(
            CallReference(
                file=state.rel_path,
                line=line,
                kind=kind,
                target_type=type_name,
                target_method=method,
                context=state.context(line),
            )
        )
        if added:
            log.debug("reference", kind=kind.value, target=entry.key, file=state.rel_path, line=line)
        return added if dedup_only else True


# =============================================================================
# Phase entry points
# =============================================================================


def catalog_from_inventory(doc: InventoryDoc, config: LinkageConfig) -> tuple[list[LinkageEntry], list[str]]:
    """Build linkage entries (one per method) and the list of tracked type names."""
    types = [*doc.classes, *doc.traits]
    if config.include_interfaces:
        types.extend(doc.interfaces)

    entries: list[LinkageEntry] = []
    seen: set[str] = set()
    type_names: list[str] = []
    for type_doc in types:
        if type_doc.name in seen:
            log.debug("duplicate_type", type=type_doc.name, file=type_doc.file)
            continue
        seen.add(type_doc.name)
        type_names.append(type_doc.name)
        for method in type_doc.methods:
            entries.append(LinkageEntry(type_doc.name, method.name, method.visibility, type_doc.file))
    return entries, type_names


def summarize(entries: list[LinkageEntry], files: list[str], limit: int) -> dict[str, Any]:
    referenced = sum(1 for e in entries if e.reference_count > 0)
    unreferenced = sorted(e.key for e in entries if e.reference_count == 0)
    return {
        "files_scanned": files,
        "total_methods": len(entries),
        "methods_with_references": referenced,
        "methods_without_references": len(entries) - referenced,
        "top_unreferenced": unreferenced[:limit],
    }


def run_linkage(root: Path, config: SelfAuditConfig) -> dict[str, Any]:
    """Linkage phase entry point: read inventory.json, write linkage.json."""
    inventory_path = root / config.paths.artifacts_dir / INVENTORY
    doc = load_artifact(inventory_path, InventoryDoc)
    entries, type_names = catalog_from_inventory(doc, config.linkage)
    if not type_names:
        raise ArtifactError.empty(str(inventory_path), "classes")

    analyzer = LinkageAnalyzer(entries, config.linkage, type_names=type_names)

    paths = discover_files(root, [*config.scan.source_dirs, *config.scan.entry_files], config.scan.extensions)
    files: list[str] = []
    for path in paths:
        code = read_source(path)
        if code is None:
            continue
        rel = relative_path(root, path)
        files.append(rel)
        analyzer.analyze(rel, code)

    summary = summarize(entries, files, config.linkage.top_unreferenced_limit)
    payload = {
        "methods": {entry.key: entry.to_dict() for entry in entries},
        "summary": summary,
    }
    write_artifact(root / config.paths.artifacts_dir / LINKAGE, payload)
    AuditStateStore(root / config.paths.state_file).record_phase(
        "linkage",
        {k: v for k, v in summary.items() if k not in ("files_scanned", "top_unreferenced")},
    )
    log.info(
        "linkage_built",
        files=len(files),
        methods=summary["total_methods"],
        referenced=summary["methods_with_references"],
    )
    return payload
