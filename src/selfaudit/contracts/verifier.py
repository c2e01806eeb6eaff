"""Contracts phase: verify the required classes and routes exist.

Classes are checked by file existence, using the PSR-4 style mapping of the
vendor prefix onto the source directory. Routes are matched textually in the
routing file and must be bound to the expected HTTP method.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from selfaudit.config.manifests import REQUIRED_CLASSES, REQUIRED_ROUTES
from selfaudit.config.models import ContractsConfig, SelfAuditConfig
from selfaudit.core.artifacts import CONTRACTS, write_artifact
from selfaudit.core.logging import get_logger
from selfaudit.core.state import AuditStateStore

log = get_logger("contracts")

CheckStatus = Literal["PASS", "FAIL"]

_RE_METHODS = re.compile(r"'methods'\s*=>\s*'([^']+)'", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ContractCheck:
    """Result of one contract item."""

    identifier: str
    status: CheckStatus
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.status == "PASS"


class ContractVerifier:
    """Stateless checks of a project tree against fixed manifests."""

    def __init__(
        self,
        root: Path,
        config: ContractsConfig | None = None,
        *,
        classes: Mapping[str, Mapping[str, str]] = REQUIRED_CLASSES,
        routes: Mapping[str, str] = REQUIRED_ROUTES,
    ) -> None:
        self._root = root
        self._config = config or ContractsConfig()
        self._classes = classes
        self._routes = routes

    def class_path(self, fqn: str) -> str:
        """Relative path expected to declare ``fqn``."""
        prefix = self._config.vendor_prefix
        relative = fqn[len(prefix) :] if prefix and fqn.startswith(prefix) else fqn
        relative = relative.replace("\\", "/")
        return f"{self._config.source_dir}/{relative}.php"

    def check_classes(self) -> dict[str, list[ContractCheck]]:
        results: dict[str, list[ContractCheck]] = {}
        for group, classes in self._classes.items():
            results[group] = []
            for fqn, description in classes.items():
                relative = self.class_path(fqn)
                exists = (self._root / relative).is_file()
                results[group].append(
                    ContractCheck(
                        identifier=fqn,
                        status="PASS" if exists else "FAIL",
                        details={"description": description, "file": relative},
                    )
                )
        return results

    def registered_routes(self) -> dict[str, str | None]:
        """Route path -> upper-cased HTTP method found in the routing file."""
        routes_file = self._root / self._config.routes_file
        if not routes_file.is_file():
            log.debug("routes_file_missing", path=str(routes_file))
            return {}
        try:
            contents = routes_file.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            log.warning("routes_file_unreadable", path=str(routes_file), error=str(e))
            return {}

        namespace = re.escape(self._config.route_namespace)
        pattern = re.compile(
            rf"register_rest_route\('{namespace}',\s*'([^']+)'\s*,\s*\[(.*?)\]\);",
            re.DOTALL,
        )
        found: dict[str, str | None] = {}
        for match in pattern.finditer(contents):
            path = match.group(1).replace("\\\\", "\\")
            method = _RE_METHODS.search(match.group(2))
            found[path] = method.group(1).upper() if method else None
        return found

    def check_routes(self) -> list[ContractCheck]:
        registered = self.registered_routes()
        checks: list[ContractCheck] = []
        for path, expected in self._routes.items():
            actual = registered.get(path)
            passed = path in registered and actual == expected.upper()
            checks.append(
                ContractCheck(
                    identifier=path,
                    status="PASS" if passed else "FAIL",
                    details={"expected_method": expected, "actual_method": actual},
                )
            )
        return checks

    def verify(self) -> dict[str, Any]:
        """Run every check and build the contracts artifact."""
        classes = self.check_classes()
        routes = self.check_routes()
        all_checks = [c for group in classes.values() for c in group] + routes
        passed = sum(1 for c in all_checks if c.passed)
        return {
            "generated_at": datetime.now(UTC).isoformat(timespec="seconds"),
            "classes": {
                group: [
                    {
                        "class": c.identifier,
                        "description": c.details["description"],
                        "file": c.details["file"],
                        "status": c.status,
                    }
                    for c in checks
                ]
                for group, checks in classes.items()
            },
            "routes": [{"path": c.identifier, "status": c.status, "details": c.details} for c in routes],
            "summary": {
                "total_checks": len(all_checks),
                "passed": passed,
                "failed": len(all_checks) - passed,
            },
        }


def run_contracts(root: Path, config: SelfAuditConfig) -> dict[str, Any]:
    """Contracts phase entry point: write contracts.json."""
    payload = ContractVerifier(root, config.contracts).verify()
    write_artifact(root / config.paths.artifacts_dir / CONTRACTS, payload)
    AuditStateStore(root / config.paths.state_file).record_phase("contracts", payload["summary"])
    log.info("contracts_verified", **payload["summary"])
    return payload
