"""Catalog and call-graph data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

TypeKind = Literal["class", "interface", "trait"]
Visibility = Literal["public", "protected"]

# Inventory bucket per declared kind
KIND_BUCKETS: dict[str, str] = {
    "class": "classes",
    "interface": "interfaces",
    "trait": "traits",
}


@dataclass(frozen=True, slots=True)
class MethodSignature:
    """A callable method. Private methods are never cataloged."""

    name: str
    visibility: Visibility = "public"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "visibility": self.visibility}


@dataclass(slots=True)
class TypeDeclaration:
    """A class, interface or trait found by the scanner."""

    name: str  # fully-qualified, no leading separator
    short_name: str
    kind: TypeKind
    file: str  # relative to the project root, forward slashes
    methods: list[MethodSignature] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "name": self.name,
            "short_name": self.short_name,
            "file": self.file,
            "methods": [m.to_dict() for m in self.methods],
        }


@dataclass(frozen=True, slots=True)
class RouteDeclaration:
    """A REST route registration."""

    namespace: str | None
    path: str | None
    http_method: str | None
    callback: tuple[str, ...] | None
    file: str

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "namespace": self.namespace,
            "route": self.path,
            "methods": self.http_method,
            "callback": list(self.callback) if self.callback else None,
            "file": self.file,
        }
        return {k: v for k, v in data.items() if v}


@dataclass(frozen=True, slots=True)
class CliCommand:
    command: str
    file: str

    def to_dict(self) -> dict[str, Any]:
        return {"command": self.command, "file": self.file}


class CallSiteKind(StrEnum):
    """Syntactic shape of a call site."""

    STATIC_CALL = "static_call"
    INSTANCE_CALL = "instance_call"
    CALLABLE = "callable"
    ARRAY_CALLABLE = "array_callable"
    STRING_CALLABLE = "string_callable"


@dataclass(frozen=True, slots=True)
class CallReference:
    """One resolved call site of a cataloged method."""

    file: str
    line: int
    kind: CallSiteKind
    target_type: str
    target_method: str
    context: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "type": self.kind.value,
            "context": self.context,
        }


@dataclass(slots=True)
class LinkageEntry:
    """A cataloged method and every call site found for it."""

    type_name: str
    method: str
    visibility: str
    declared_in: str | None
    references: list[CallReference] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.type_name}::{self.method}"

    @property
    def reference_count(self) -> int:
        return len(self.references)

    def add(self, reference: CallReference) -> bool:
        """Record a reference unless one already exists on the same file and line."""
        for existing in self.references:
            if existing.file == reference.file and existing.line == reference.line:
                return False
        self.references.append(reference)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "class": self.type_name,
            "method": self.method,
            "visibility": self.visibility,
            "declared_in": self.declared_in,
            "reference_count": self.reference_count,
            "references": [r.to_dict() for r in self.references],
        }
