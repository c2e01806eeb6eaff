"""JSON artifacts exchanged between audit phases.

Each phase writes exactly one artifact (the scorecard writes two) and reads
the artifacts of earlier phases from the artifacts directory. Reading is
strict: a missing file, invalid JSON or a document whose shape does not match
the schema below raises ArtifactError, which aborts the current phase.

The schemas only pin down the fields downstream phases consume; everything
else in an artifact is carried through untouched (``extra="allow"``).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from selfaudit.core.errors import ArtifactError

INVENTORY = "inventory.json"
LINKAGE = "linkage.json"
CONTRACTS = "contracts.json"
RUNTIME = "runtime.json"
PROGRESS = "progress.json"
REPORT = "report.json"

# Phase that produces each artifact, used in "run X first" messages
PRODUCED_BY = {
    INVENTORY: "inventory",
    LINKAGE: "linkage",
    CONTRACTS: "contracts",
    RUNTIME: "runtime",
    PROGRESS: "progress",
    REPORT: "progress",
}


class _Artifact(BaseModel):
    model_config = ConfigDict(extra="allow")


class MethodDoc(_Artifact):
    name: str
    visibility: str = "public"


class TypeDoc(_Artifact):
    name: str
    short_name: str = ""
    type: str = "class"
    file: str | None = None
    methods: list[MethodDoc] = Field(default_factory=list)


class AdminPageDoc(_Artifact):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    class_name: str = Field(alias="class")
    file: str | None = None
    methods: list[MethodDoc] = Field(default_factory=list)


class InventoryDoc(_Artifact):
    classes: list[TypeDoc] = Field(default_factory=list)
    interfaces: list[TypeDoc] = Field(default_factory=list)
    traits: list[TypeDoc] = Field(default_factory=list)
    admin_pages: list[AdminPageDoc] = Field(default_factory=list)


class ReferenceDoc(_Artifact):
    file: str
    line: int
    type: str
    context: str = ""


class LinkageMethodDoc(_Artifact):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    class_name: str = Field(alias="class")
    method: str
    reference_count: int = 0
    references: list[ReferenceDoc] = Field(default_factory=list)


class LinkageSummaryDoc(_Artifact):
    top_unreferenced: list[str] = Field(default_factory=list)


class LinkageDoc(_Artifact):
    methods: dict[str, LinkageMethodDoc] = Field(default_factory=dict)
    summary: LinkageSummaryDoc = Field(default_factory=LinkageSummaryDoc)


class ClassCheckDoc(_Artifact):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    class_name: str = Field(alias="class")
    status: str = "UNKNOWN"


class RouteCheckDoc(_Artifact):
    path: str = "unknown"
    status: str = "UNKNOWN"


class ContractsDoc(_Artifact):
    classes: dict[str, list[ClassCheckDoc]] = Field(default_factory=dict)
    routes: list[RouteCheckDoc] = Field(default_factory=list)


class RuntimeDoc(_Artifact):
    seed: dict[str, Any] = Field(default_factory=dict)
    run: dict[str, Any] = Field(default_factory=dict)
    anomalies: dict[str, Any] = Field(default_factory=dict)
    status: dict[str, Any] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)


_M = TypeVar("_M", bound=BaseModel)


def read_json(path: Path) -> Any:
    """Read a JSON document, mapping every failure to ArtifactError."""
    if not path.is_file():
        raise ArtifactError.missing(str(path), PRODUCED_BY.get(path.name, "previous"))
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ArtifactError.malformed(str(path), f"unreadable: {e}") from e
    except json.JSONDecodeError as e:
        raise ArtifactError.malformed(str(path), f"invalid JSON: {e}") from e


def load_artifact(path: Path, model: type[_M]) -> _M:
    """Load and validate a prior-phase artifact."""
    data = read_json(path)
    if not isinstance(data, dict):
        raise ArtifactError.malformed(str(path), "top-level value is not an object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        err = e.errors()[0]
        where = ".".join(str(loc) for loc in err["loc"])
        raise ArtifactError.malformed(str(path), f"{where}: {err['msg']}") from e


def write_artifact(path: Path, payload: dict[str, Any]) -> Path:
    """Write an artifact as pretty-printed JSON (unescaped slashes and unicode)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(payload, indent=4, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return path
