"""Inventory phase: catalog declared types, methods, routes and commands.

Each source file is tokenized once and walked left to right with an integer
cursor. The walk tracks:

- the current namespace (reset at every ``namespace`` token),
- an explicit stack of (type, brace depth) frames pushed when a type body
  opens and popped when its closing brace is reached,
- the last visibility modifier seen since the previous statement boundary.

Routes and CLI commands are found by text matching fixed call shapes rather
than by parsing. A file that cannot be read contributes nothing.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from selfaudit.config.models import ScanConfig, SelfAuditConfig
from selfaudit.core.artifacts import INVENTORY, write_artifact
from selfaudit.core.logging import get_logger
from selfaudit.core.state import AuditStateStore
from selfaudit.scan.models import (
    KIND_BUCKETS,
    CliCommand,
    MethodSignature,
    RouteDeclaration,
    TypeDeclaration,
    TypeKind,
)
from selfaudit.scan.tokenizer import (
    NAME_KINDS,
    VISIBILITY_KINDS,
    Token,
    TokenKind,
    next_significant,
    prev_significant,
    tokenize,
)

log = get_logger("inventory")

_TYPE_KINDS: dict[TokenKind, TypeKind] = {
    TokenKind.CLASS: "class",
    TokenKind.INTERFACE: "interface",
    TokenKind.TRAIT: "trait",
}

_RE_QUOTED = re.compile(r"'([^']+)'")
_RE_ROUTE_METHOD = re.compile(r"'methods'\s*=>\s*'([^']+)'")
_RE_ROUTE_CALLBACK = re.compile(r"\bcallback\b'?\s*=>\s*\[(.*?)\]", re.DOTALL)


# =============================================================================
# Source discovery
# =============================================================================


def discover_files(root: Path, paths: Iterable[str], extensions: Iterable[str]) -> list[Path]:
    """List source files under ``paths`` (dirs or single files), sorted and unique."""
    suffixes = {ext.lower() for ext in extensions}
    found: set[Path] = set()
    for entry in paths:
        target = root / entry
        if target.is_file():
            if target.suffix.lower() in suffixes:
                found.add(target)
            continue
        if not target.is_dir():
            continue
        for candidate in target.rglob("*"):
            if candidate.is_file() and candidate.suffix.lower() in suffixes:
                found.add(candidate)
    return sorted(found, key=lambda p: p.as_posix())


def relative_path(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def read_source(path: Path) -> str | None:
    """Read a source file; unreadable files yield None."""
    try:
        return path.read_bytes().decode("utf-8", errors="replace")
    except OSError as e:
        log.warning("source_unreadable", path=str(path), error=str(e))
        return None


# =============================================================================
# Type scanning
# =============================================================================


@dataclass(slots=True)
class _Frame:
    declaration: TypeDeclaration | None  # None for anonymous classes
    depth: int


def scan_types(tokens: list[Token], rel_path: str) -> list[TypeDeclaration]:
    """Find class/interface/trait declarations and their callable methods."""
    declarations: list[TypeDeclaration] = []
    namespace = ""
    depth = 0
    stack: list[_Frame] = []
    pending: TypeDeclaration | None = None
    pending_anonymous = False
    visibility: TokenKind | None = None

    count = len(tokens)
    i = 0
    while i < count:
        token = tokens[i]
        kind = token.kind

        if kind is TokenKind.NAMESPACE:
            namespace, i = read_namespace(tokens, i)
            continue

        if kind in _TYPE_KINDS:
            prev = prev_significant(tokens, i - 1)
            prev_kind = tokens[prev].kind if prev is not None else None
            if prev_kind is TokenKind.DOUBLE_COLON:
                i += 1
                continue
            if prev_kind is TokenKind.NEW:
                pending_anonymous = True
                i += 1
                continue
            name_index = next_significant(tokens, i + 1)
            if name_index is not None and tokens[name_index].kind is TokenKind.IDENTIFIER:
                short_name = tokens[name_index].text
                fqn = f"{namespace}\\{short_name}".lstrip("\\")
                pending = TypeDeclaration(fqn, short_name, _TYPE_KINDS[kind], rel_path)
                declarations.append(pending)
                i = name_index
            i += 1
            continue

        if kind in VISIBILITY_KINDS:
            visibility = kind
        elif kind is TokenKind.FUNCTION:
            frame = stack[-1] if stack else None
            if frame is not None and frame.declaration is not None and depth == frame.depth + 1:
                method = _read_method(tokens, i, visibility)
                if method is not None:
                    frame.declaration.methods.append(method)
            visibility = None
        elif kind is TokenKind.VARIABLE:
            visibility = None
        elif token.is_punct("{"):
            if pending is not None or pending_anonymous:
                stack.append(_Frame(pending, depth))
                pending = None
                pending_anonymous = False
            depth += 1
            visibility = None
        elif token.is_punct("}"):
            depth -= 1
            if stack and stack[-1].depth >= depth:
                stack.pop()
            visibility = None
        elif token.is_punct(";", ","):
            visibility = None

        i += 1

    return declarations


def read_namespace(tokens: list[Token], index: int) -> tuple[str, int]:
    """Read a ``namespace`` statement starting at ``index``.

    Returns the namespace and the index of the terminating ``{`` or ``;`` so
    the caller still sees the brace.
    """
    namespace = ""
    i = index + 1
    while i < len(tokens):
        token = tokens[i]
        if token.kind in NAME_KINDS:
            namespace += token.text.lstrip("\\")
        elif token.is_punct("\\"):
            namespace += "\\"
        elif token.is_punct("{", ";"):
            break
        i += 1
    return namespace, i


def _read_method(tokens: list[Token], index: int, visibility: TokenKind | None) -> MethodSignature | None:
    j = index + 1
    while j < len(tokens) and (tokens[j].is_trivia or tokens[j].is_punct("&")):
        j += 1
    if j >= len(tokens) or tokens[j].is_punct("("):
        return None  # closure
    if tokens[j].kind is not TokenKind.IDENTIFIER:
        return None
    if visibility is TokenKind.PRIVATE:
        return None
    return MethodSignature(
        tokens[j].text,
        "protected" if visibility is TokenKind.PROTECTED else "public",
    )


# =============================================================================
# Text-pattern extraction
# =============================================================================


def extract_routes(code: str, rel_path: str, call_name: str = "register_rest_route") -> list[RouteDeclaration]:
    """Extract route registrations: ``call('ns', '/path', ['methods' => 'GET', ...])``."""
    routes: list[RouteDeclaration] = []
    call = re.compile(rf"\b{re.escape(call_name)}\s*\(")
    offset = 0
    while match := call.search(code, offset):
        cursor = match.end()
        paren_depth = 1
        while cursor < len(code) and paren_depth > 0:
            if code[cursor] == "(":
                paren_depth += 1
            elif code[cursor] == ")":
                paren_depth -= 1
            cursor += 1
        args = code[match.end() : cursor - 1]
        offset = cursor

        quoted = _RE_QUOTED.findall(args)
        method = _RE_ROUTE_METHOD.search(args)
        callback = _RE_ROUTE_CALLBACK.search(args)
        callback_parts: tuple[str, ...] | None = None
        if callback:
            parts = (piece.strip().strip("'\" ") for piece in callback.group(1).split(","))
            callback_parts = tuple(p for p in parts if p) or None

        routes.append(
            RouteDeclaration(
                namespace=quoted[0] if len(quoted) > 0 else None,
                path=quoted[1] if len(quoted) > 1 else None,
                http_method=method.group(1) if method else None,
                callback=callback_parts,
                file=rel_path,
            )
        )
    return routes


def extract_cli_commands(code: str, rel_path: str, pattern: str) -> list[CliCommand]:
    return [CliCommand(name, rel_path) for name in re.findall(pattern, code)]


# =============================================================================
# Inventory
# =============================================================================


@dataclass
class Inventory:
    """Read-only catalog produced by one scanner pass."""

    types: list[TypeDeclaration] = field(default_factory=list)
    routes: list[RouteDeclaration] = field(default_factory=list)
    cli_commands: list[CliCommand] = field(default_factory=list)
    admin_pages_dir: str = ""

    def of_kind(self, kind: TypeKind) -> list[TypeDeclaration]:
        return [t for t in self.types if t.kind == kind]

    @property
    def admin_pages(self) -> list[TypeDeclaration]:
        if not self.admin_pages_dir:
            return []
        return [t for t in self.types if t.file.startswith(self.admin_pages_dir)]

    def summary(self) -> dict[str, int]:
        return {
            "classes": len(self.of_kind("class")),
            "interfaces": len(self.of_kind("interface")),
            "traits": len(self.of_kind("trait")),
            "methods": sum(len(t.methods) for t in self.types),
            "rest_routes": len(self.routes),
            "admin_pages": len(self.admin_pages),
            "cli_commands": len(self.cli_commands),
        }

    def to_dict(self, generated_at: str) -> dict[str, Any]:
        data: dict[str, Any] = {"generated_at": generated_at}
        for kind, bucket in KIND_BUCKETS.items():
            data[bucket] = [t.to_dict() for t in self.of_kind(kind)]  # type: ignore[arg-type]
        data["rest_routes"] = [r.to_dict() for r in self.routes]
        data["admin_pages"] = [
            {"class": t.name, "file": t.file, "methods": [m.to_dict() for m in t.methods]}
            for t in self.admin_pages
        ]
        data["cli_commands"] = [c.to_dict() for c in self.cli_commands]
        data["summary"] = self.summary()
        return data


def build_inventory(root: Path, config: ScanConfig) -> Inventory:
    """Scan the configured source directories of ``root``."""
    inventory = Inventory(admin_pages_dir=config.admin_pages_dir)
    for path in discover_files(root, config.source_dirs, config.extensions):
        code = read_source(path)
        if code is None:
            continue
        rel = relative_path(root, path)
        inventory.types.extend(scan_types(tokenize(code), rel))
        inventory.routes.extend(extract_routes(code, rel, config.routes_call))
        inventory.cli_commands.extend(extract_cli_commands(code, rel, config.cli_pattern))
    log.info("inventory_built", **inventory.summary())
    return inventory


def run_inventory(root: Path, config: SelfAuditConfig) -> dict[str, Any]:
    """Inventory phase entry point: scan, write inventory.json, return the artifact."""
    inventory = build_inventory(root, config.scan)
    payload = inventory.to_dict(datetime.now(UTC).isoformat(timespec="seconds"))
    write_artifact(root / config.paths.artifacts_dir / INVENTORY, payload)
    AuditStateStore(root / config.paths.state_file).record_phase("inventory", payload["summary"])
    return payload
