"""Substitute host environment.

Every substitute is owned by one ``EnvironmentState``; nothing is stored at
module level, so two harness runs never share options, tables, hooks or logs.
None of the substitutes performs network or mail I/O: calls are recorded and
answered with canned responses.
"""

from __future__ import annotations

import json
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Final
from zoneinfo import ZoneInfo

from selfaudit.config.models import HarnessConfig
from selfaudit.core.logging import get_logger
from selfaudit.harness.store import MockStore

log = get_logger("harness.env")

Clock = Callable[[], float]


class _Missing:
    """Not-found marker returned by the transient store."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()


class OptionStore:
    """Named options without expiry."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def delete(self, name: str) -> None:
        self._values.pop(name, None)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)


@dataclass(slots=True)
class _Transient:
    value: Any
    expires_at: float | None


class TransientStore:
    """Expiring key/value store. Expired entries are purged lazily on read."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._items: dict[str, _Transient] = {}

    def get(self, key: str) -> Any:
        """Value for ``key``, or ``MISSING`` when absent or expired."""
        self.purge_expired()
        item = self._items.get(key)
        return MISSING if item is None else item.value

    def set(self, key: str, value: Any, ttl: int) -> None:
        """Store ``value``; a ``ttl`` of zero or less never expires."""
        expires_at = self._clock() + ttl if ttl > 0 else None
        self._items[key] = _Transient(value, expires_at)

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, item in self._items.items() if item.expires_at is not None and item.expires_at <= now]
        for key in expired:
            del self._items[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)


class HookRegistry:
    """Actions and filters registered by hook name."""

    def __init__(self) -> None:
        self._actions: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._filters: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    def add_action(self, hook: str, callback: Callable[..., Any]) -> None:
        self._actions[hook].append(callback)

    def do_action(self, hook: str, *args: Any) -> None:
        for callback in list(self._actions.get(hook, ())):
            callback(*args)

    def add_filter(self, hook: str, callback: Callable[..., Any]) -> None:
        self._filters[hook].append(callback)

    def apply_filters(self, hook: str, value: Any, *args: Any) -> Any:
        for callback in list(self._filters.get(hook, ())):
            value = callback(value, *args)
        return value

    def has(self, hook: str) -> bool:
        return bool(self._actions.get(hook) or self._filters.get(hook))


class HttpClientSubstitute:
    """Records outgoing POSTs and answers 200 with the request body echoed."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self.requests: list[dict[str, Any]] = []

    def post(self, url: str, args: dict[str, Any] | None = None) -> dict[str, Any]:
        args = dict(args or {})
        body = args.get("body", "")
        if not isinstance(body, str):
            body = json.dumps(body, ensure_ascii=False)
        self.requests.append({"url": url, "args": args, "timestamp": int(self._clock())})
        log.debug("http_post", url=url)
        return {
            "body": body,
            "response": {"code": 200, "message": "OK"},
            "headers": {},
        }


class MailSubstitute:
    """Records every message and reports success.

    Before recording, the ``phpmailer_init`` action runs with a transport
    dict (``mailer``, ``host``, ``port``, ``secure``, ``auth``, ``username``)
    that callbacks may rewrite; the final transport is logged with the message.
    """

    def __init__(self, hooks: HookRegistry | None = None) -> None:
        self._hooks = hooks or HookRegistry()
        self.log: list[dict[str, Any]] = []

    def send(
        self,
        to: str | list[str],
        subject: str,
        body: str,
        headers: list[str] | None = None,
        attachments: list[str] | None = None,
    ) -> bool:
        recipients = [to] if isinstance(to, str) else list(to)
        transport: dict[str, Any] = {
            "mailer": "mail",
            "host": "",
            "port": 0,
            "secure": "",
            "auth": False,
            "username": "",
        }
        self._hooks.do_action("phpmailer_init", transport)
        self.log.append(
            {
                "to": recipients,
                "subject": subject,
                "headers": list(headers or []),
                "attachments": list(attachments or []),
                "message": body,
                "transport": transport,
            }
        )
        log.debug("mail_sent", to=recipients, subject=subject, mailer=transport["mailer"])
        return True

    @property
    def last(self) -> dict[str, Any] | None:
        return self.log[-1] if self.log else None


class UploadDir:
    """Single upload directory, created on first use and memoized."""

    def __init__(self, base_dir: Path, base_url: str) -> None:
        self._base_dir = base_dir
        self._base_url = base_url.rstrip("/")
        self._info: dict[str, Any] | None = None

    def info(self) -> dict[str, Any]:
        if self._info is None:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            path = str(self._base_dir)
            self._info = {
                "path": path,
                "url": self._base_url,
                "subdir": "",
                "basedir": path,
                "baseurl": self._base_url,
                "error": False,
            }
        return self._info

    @property
    def base_dir(self) -> Path:
        return Path(self.info()["basedir"])


@dataclass
class EnvironmentState:
    """Everything the application sees of its host, fresh per harness run."""

    store: MockStore
    uploads: UploadDir
    clock: Clock = time.time
    timezone: str = "UTC"
    options: OptionStore = field(default_factory=OptionStore)
    transients: TransientStore = field(init=False)
    hooks: HookRegistry = field(default_factory=HookRegistry)
    http: HttpClientSubstitute = field(init=False)
    mail: MailSubstitute = field(init=False)

    def __post_init__(self) -> None:
        self.transients = TransientStore(self.clock)
        self.http = HttpClientSubstitute(self.clock)
        self.mail = MailSubstitute(self.hooks)

    @classmethod
    def create(cls, config: HarnessConfig, artifacts_dir: Path, clock: Clock = time.time) -> EnvironmentState:
        return cls(
            store=MockStore(config.table_prefix),
            uploads=UploadDir(artifacts_dir / config.upload_dir, config.upload_url),
            clock=clock,
            timezone=config.timezone,
        )

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), ZoneInfo(self.timezone))

    def current_time(self) -> str:
        """Current time in ``YYYY-mm-dd HH:MM:SS`` form."""
        return self.now().strftime("%Y-%m-%d %H:%M:%S")

    def timestamp(self) -> int:
        return int(self.clock())
