"""Runtime harness.

The plugin's QA lifecycle runs against in-process substitutes for its host
(options, transients, database, HTTP, mail, uploads, hooks). Nothing leaves
the process.
"""

from selfaudit.harness.env import MISSING, EnvironmentState
from selfaudit.harness.runner import RuntimeHarness, run_runtime
from selfaudit.harness.store import MockStore

__all__ = ["MISSING", "EnvironmentState", "MockStore", "RuntimeHarness", "run_runtime"]
