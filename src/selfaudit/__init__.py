"""selfaudit - static and runtime self-audit for the plugin source tree."""

__version__ = "0.1.0"
