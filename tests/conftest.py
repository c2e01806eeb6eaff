"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages and
provides a small plugin source tree shared by the scan, contracts and CLI tests.
"""

import sys
from pathlib import Path

import pytest

_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))


SAMPLE_PLUGIN: dict[str, str] = {
    "src/Http/Routes.php": r"""<?php

namespace FP\DMS\Http;

use FP\DMS\Infra\Queue;

class Routes
{
    public static function register(): void
    {
        register_rest_route('fpdms/v1', '/tick', [
            'methods' => 'POST',
            'callback' => [self::class, 'tick'],
        ]);
        register_rest_route('fpdms/v1', '/qa/status', [
            'methods' => 'GET',
            'callback' => [self::class, 'qaStatus'],
        ]);
    }

    public static function tick()
    {
        return Queue::tick();
    }

    public static function qaStatus() {}
}
""",
    "src/Infra/Queue.php": r"""<?php

namespace FP\DMS\Infra;

class Queue
{
    public static function tick(): void
    {
        $lock = new Lock();
        if (Lock::acquire('queue-global')) {
            self::process();
        }
    }

    protected static function process(): void {}

    private function hidden(): void {}
}
""",
    "src/Infra/Lock.php": r"""<?php

namespace FP\DMS\Infra;

final class Lock
{
    public static function acquire(string $name): bool
    {
        return true;
    }

    public static function release(string $name): void {}
}
""",
    "src/Admin/Pages/QaPage.php": r"""<?php

namespace FP\DMS\Admin\Pages;

class QaPage
{
    public static function register(): void
    {
        add_submenu_page('fpdms', 'QA', 'QA', 'manage_options', 'fpdms-qa', [self::class, 'render']);
    }

    public static function render(): void {}
}
""",
    "src/Services/Connectors/CsvGenericProvider.php": r"""<?php

namespace FP\DMS\Services\Connectors;

class CsvGenericProvider
{
    public function fetchMetrics(array $period): array
    {
        return $this->parse($period);
    }

    protected function parse(array $rows): array
    {
        return $rows;
    }
}
""",
    "src/Services/Connectors/ProviderInterface.php": r"""<?php

namespace FP\DMS\Services\Connectors;

interface ProviderInterface
{
    public function fetchMetrics(array $period): array;
}
""",
    "src/Cli/Commands.php": r"""<?php

namespace FP\DMS\Cli;

class Commands
{
    public static function boot(): void
    {
        WP_CLI::add_command('fpdms', self::class);
    }
}
""",
    "fp-digital-marketing-suite.php": r"""<?php
/**
 * Plugin Name: FP Digital Marketing Suite
 */

use FP\DMS\Admin\Pages\QaPage;

add_action('admin_menu', [QaPage::class, 'register']);
add_action('rest_api_init', 'FP\DMS\Http\Routes::register');
""",
}


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def plugin_root(tmp_path: Path) -> Path:
    """A small plugin tree covering every call-site shape."""
    return write_tree(tmp_path / "plugin", SAMPLE_PLUGIN)
