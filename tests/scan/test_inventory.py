"""Tests for the inventory scanner.

Covers:
- scan_types(): namespaces, type frames, method visibility
- extract_routes() / extract_cli_commands() text patterns
- run_inventory(): artifact, summary and determinism
"""

from __future__ import annotations

import json
from pathlib import Path

from selfaudit.config.models import ScanConfig, SelfAuditConfig
from selfaudit.core.state import AuditStateStore
from selfaudit.scan.inventory import (
    build_inventory,
    discover_files,
    extract_cli_commands,
    extract_routes,
    run_inventory,
    scan_types,
)
from selfaudit.scan.tokenizer import tokenize


def _scan(code: str, rel: str = "src/Example.php") -> dict[str, list[tuple[str, str]]]:
    return {
        t.name: [(m.name, m.visibility) for m in t.methods]
        for t in scan_types(tokenize(code), rel)
    }


class TestScanTypes:
    """Type and method cataloging."""

    def test_given_private_method_when_scanned_then_only_callable_methods_listed(self) -> None:
        """Private methods are never cataloged."""
        code = r"""<?php
namespace Foo\Bar;
class Baz { public function qux(){} private function hidden(){} }
"""
        assert _scan(code) == {r"Foo\Bar\Baz": [("qux", "public")]}

    def test_given_modifiers_when_scanned_then_visibility_from_last_modifier(self) -> None:
        """Visibility is the last modifier since the previous boundary, default public."""
        code = """<?php
class A {
    protected static function make() {}
    function plain() {}
    public $x = 1; function afterProperty() {}
}
"""
        assert _scan(code) == {
            "A": [("make", "protected"), ("plain", "public"), ("afterProperty", "public")]
        }

    def test_given_closures_when_scanned_then_not_methods(self) -> None:
        """Closures and nested functions inside method bodies are ignored."""
        code = """<?php
class A {
    public function run() {
        $f = function () {};
        $g = static function &() {};
    }
}
"""
        assert _scan(code) == {"A": [("run", "public")]}

    def test_given_anonymous_class_when_scanned_then_its_methods_skipped(self) -> None:
        """Anonymous class bodies are tracked but not cataloged."""
        code = """<?php
class Outer {
    public function build() {
        return new class { public function inner() {} };
    }
    public function after() {}
}
"""
        assert _scan(code) == {"Outer": [("build", "public"), ("after", "public")]}

    def test_given_interface_and_trait_when_scanned_then_kinds_recorded(self) -> None:
        """Interfaces and traits are declared types too."""
        code = """<?php
namespace App;
interface Renders { public function render(): string; }
trait Helps { protected function help() {} }
"""
        kinds = {t.name: t.kind for t in scan_types(tokenize(code), "src/x.php")}

        assert kinds == {r"App\Renders": "interface", r"App\Helps": "trait"}

    def test_given_braced_namespaces_when_scanned_then_each_applies(self) -> None:
        """Each namespace token resets the current namespace."""
        code = """<?php
namespace One { class A {} }
namespace Two { class B {} }
"""
        assert set(_scan(code)) == {r"One\A", r"Two\B"}

    def test_given_class_constant_when_scanned_then_not_a_declaration(self) -> None:
        """``Foo::class`` is not a class declaration."""
        code = """<?php
class A { public function f() { return B::class; } }
"""
        assert list(_scan(code)) == ["A"]

    def test_given_keyword_method_name_when_scanned_then_cataloged(self) -> None:
        """Methods named like keywords are still methods."""
        code = "<?php class A { public function list() {} public static function new() {} }"

        assert _scan(code) == {"A": [("list", "public"), ("new", "public")]}

    def test_given_garbage_when_scanned_then_nothing_found(self) -> None:
        """Unrecognized syntax degrades to an empty result."""
        assert scan_types(tokenize("<?php }}} class { function"), "src/bad.php") == []


class TestTextPatterns:
    """Route and CLI command extraction."""

    def test_given_route_call_when_extracted_then_fields_parsed(self) -> None:
        """Namespace, path, method and callback come from the fixed call shape."""
        code = "register_rest_route('fpdms/v1', '/qa/seed', ['methods' => 'POST', 'callback' => [$this, 'seed']]);"

        routes = extract_routes(code, "src/Http/Routes.php")

        assert len(routes) == 1
        assert routes[0].to_dict() == {
            "namespace": "fpdms/v1",
            "route": "/qa/seed",
            "methods": "POST",
            "callback": ["$this", "seed"],
            "file": "src/Http/Routes.php",
        }

    def test_given_route_without_options_when_extracted_then_missing_fields_dropped(self) -> None:
        """Absent parts are omitted from the serialized route."""
        routes = extract_routes("register_rest_route($ns, $path);", "r.php")

        assert routes[0].to_dict() == {"file": "r.php"}

    def test_given_cli_registration_when_extracted_then_command_named(self) -> None:
        """CLI registrations are matched by the configured pattern."""
        code = "WP_CLI::add_command( 'fpdms qa', Commands::class );"

        commands = extract_cli_commands(code, "src/Cli.php", ScanConfig().cli_pattern)

        assert [c.to_dict() for c in commands] == [{"command": "fpdms qa", "file": "src/Cli.php"}]


class TestDiscoverFiles:
    """Source discovery."""

    def test_given_mixed_tree_when_discovered_then_sorted_php_only(self, tmp_path: Path) -> None:
        """Only matching extensions are returned, sorted, and missing paths are skipped."""
        (tmp_path / "src" / "B").mkdir(parents=True)
        (tmp_path / "src" / "B" / "z.php").write_text("<?php")
        (tmp_path / "src" / "a.PHP").write_text("<?php")
        (tmp_path / "src" / "notes.txt").write_text("x")
        (tmp_path / "main.php").write_text("<?php")

        found = discover_files(tmp_path, ["src", "main.php", "absent"], [".php"])

        assert [p.relative_to(tmp_path).as_posix() for p in found] == ["main.php", "src/B/z.php", "src/a.PHP"]


class TestRunInventory:
    """Inventory phase entry point."""

    def test_given_plugin_when_run_then_summary_counts(self, plugin_root: Path) -> None:
        """The summary counts every cataloged item."""
        payload = run_inventory(plugin_root, SelfAuditConfig())

        assert payload["summary"] == {
            "classes": 6,
            "interfaces": 1,
            "traits": 0,
            "methods": 13,
            "rest_routes": 2,
            "admin_pages": 1,
            "cli_commands": 1,
        }
        assert payload["admin_pages"][0]["class"] == r"FP\DMS\Admin\Pages\QaPage"

    def test_given_plugin_when_run_then_artifact_and_state_written(self, plugin_root: Path) -> None:
        """inventory.json and the state snapshot are both written."""
        run_inventory(plugin_root, SelfAuditConfig())

        written = json.loads((plugin_root / ".selfaudit" / "inventory.json").read_text())
        state = AuditStateStore(plugin_root / ".audit-state.json").load()
        assert written["summary"]["classes"] == 6
        assert state.phases_done == [1]
        assert state.totals["inventory"]["methods"] == 13

    def test_given_unchanged_tree_when_rescanned_then_identical_catalog(self, plugin_root: Path) -> None:
        """Two scans of the same tree differ only in their timestamp."""
        config = SelfAuditConfig()

        first = run_inventory(plugin_root, config)
        second = run_inventory(plugin_root, config)

        first.pop("generated_at")
        second.pop("generated_at")
        assert json.dumps(first, sort_keys=False) == json.dumps(second, sort_keys=False)

    def test_given_empty_source_dir_when_built_then_empty_inventory(self, tmp_path: Path) -> None:
        """A tree without sources yields an empty catalog, not an error."""
        inventory = build_inventory(tmp_path, ScanConfig())

        assert inventory.types == []
        assert inventory.summary()["methods"] == 0
