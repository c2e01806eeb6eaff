"""Table repositories over the mock store.

Reads go through both the structured and the textual (prepared SELECT) API of
the store, the way the application mixes them.
"""

from __future__ import annotations

from typing import Any

from selfaudit.harness.app.entities import (
    Client,
    DataSource,
    ReportJob,
    Schedule,
    Template,
    encode_json,
)
from selfaudit.harness.env import EnvironmentState


class _Repo:
    table_name = ""
    json_columns: tuple[str, ...] = ()

    def __init__(self, env: EnvironmentState) -> None:
        self._env = env
        self._store = env.store
        self.table = env.store.table(self.table_name)

    def _encode(self, data: dict[str, Any]) -> dict[str, Any]:
        row = dict(data)
        for column in self.json_columns:
            if column in row and not isinstance(row[column], str):
                row[column] = encode_json(row[column])
        return row

    def _row(self, row_id: int) -> dict[str, Any] | None:
        return self._store.select_row(self.table, [("id", "=", row_id)])

    def _insert(self, data: dict[str, Any]) -> int | None:
        now = self._env.current_time()
        row = self._encode({"created_at": now, "updated_at": now, **data})
        if self._store.insert(self.table, row) != 1:
            return None
        return self._store.insert_id

    def _update(self, row_id: int, data: dict[str, Any]) -> bool:
        row = self._encode({**data, "updated_at": self._env.current_time()})
        return self._store.update(self.table, row, {"id": row_id}) > 0

    def delete(self, row_id: int) -> bool:
        return self._store.delete(self.table, {"id": row_id}) > 0

    def delete_by_client(self, client_id: int) -> int:
        return self._store.delete(self.table, {"client_id": client_id})


class ClientsRepo(_Repo):
    table_name = "clients"
    json_columns = ("email_to", "email_cc")

    def find(self, client_id: int) -> Client | None:
        row = self._row(client_id)
        return Client.from_row(row) if row else None

    def find_by_name(self, name: str) -> Client | None:
        row = self._store.get_row(self._store.prepare(f"SELECT * FROM {self.table} WHERE name = %s LIMIT 1", name))
        return Client.from_row(row) if row else None

    def create(self, data: dict[str, Any]) -> Client | None:
        new_id = self._insert(data)
        return self.find(new_id) if new_id else None

    def update(self, client_id: int, data: dict[str, Any]) -> bool:
        return self._update(client_id, data)


class DataSourcesRepo(_Repo):
    table_name = "datasources"
    json_columns = ("auth", "config")

    def for_client(self, client_id: int) -> list[DataSource]:
        rows = self._store.select_all(self.table, [("client_id", "=", client_id)], order_by="id")
        return [DataSource.from_row(r) for r in rows]

    def create(self, data: dict[str, Any]) -> DataSource | None:
        new_id = self._insert(data)
        row = self._row(new_id) if new_id else None
        return DataSource.from_row(row) if row else None

    def update(self, source_id: int, data: dict[str, Any]) -> bool:
        return self._update(source_id, data)


class SchedulesRepo(_Repo):
    table_name = "schedules"

    def find(self, schedule_id: int) -> Schedule | None:
        row = self._row(schedule_id)
        return Schedule.from_row(row) if row else None

    def for_client(self, client_id: int) -> list[Schedule]:
        rows = self._store.select_all(self.table, [("client_id", "=", client_id)], order_by="id")
        return [Schedule.from_row(r) for r in rows]

    def due_schedules(self, now: str) -> list[Schedule]:
        rows = self._store.select_all(self.table, [("active", "=", 1)], order_by="next_run_at")
        return [Schedule.from_row(r) for r in rows if r.get("next_run_at") and str(r["next_run_at"]) <= now]

    def create(self, data: dict[str, Any]) -> Schedule | None:
        new_id = self._insert(data)
        return self.find(new_id) if new_id else None

    def update(self, schedule_id: int, data: dict[str, Any]) -> bool:
        return self._update(schedule_id, data)


class ReportsRepo(_Repo):
    table_name = "reports"
    json_columns = ("meta",)

    def find(self, report_id: int) -> ReportJob | None:
        row = self._row(report_id)
        return ReportJob.from_row(row) if row else None

    def for_client(self, client_id: int) -> list[ReportJob]:
        """Reports of a client, newest first."""
        sql = self._store.prepare(f"SELECT * FROM {self.table} WHERE client_id = %d ORDER BY id DESC", client_id)
        return [ReportJob.from_row(r) for r in self._store.get_results(sql)]

    def search(self, criteria: dict[str, Any]) -> list[ReportJob]:
        rows = self._store.select_all(
            self.table,
            [(k, "=", v) for k, v in criteria.items()],
            order_by="id",
            descending=True,
        )
        return [ReportJob.from_row(r) for r in rows]

    def find_by_client_and_period(
        self,
        client_id: int,
        period_start: str,
        period_end: str,
        statuses: list[str],
    ) -> ReportJob | None:
        placeholders = ", ".join(["%s"] * len(statuses))
        sql = self._store.prepare(
            f"SELECT * FROM {self.table} WHERE client_id = %d AND period_start = %s AND period_end = %s "
            f"AND status IN ({placeholders}) ORDER BY id DESC LIMIT 1",
            client_id,
            period_start,
            period_end,
            *statuses,
        )
        row = self._store.get_row(sql)
        return ReportJob.from_row(row) if row else None

    def next_queued(self) -> ReportJob | None:
        """Take the oldest queued job and mark it running."""
        sql = f"SELECT * FROM {self.table} WHERE status = 'queued' ORDER BY id ASC LIMIT 1"
        row = self._store.get_row(sql)
        if row is None:
            return None
        job = ReportJob.from_row(row)
        if job.id is None or not self._update(job.id, {"status": "running"}):
            return None
        return self.find(job.id)

    def create(self, data: dict[str, Any]) -> ReportJob | None:
        new_id = self._insert(data)
        return self.find(new_id) if new_id else None

    def update(self, report_id: int, data: dict[str, Any]) -> bool:
        return self._update(report_id, data)


class TemplatesRepo(_Repo):
    table_name = "templates"

    def find(self, template_id: int) -> Template | None:
        row = self._row(template_id)
        return Template.from_row(row) if row else None

    def find_default(self) -> Template | None:
        row = self._store.select_row(self.table, [("is_default", "=", 1)], order_by="id")
        return Template.from_row(row) if row else None

    def create(self, data: dict[str, Any]) -> Template | None:
        new_id = self._insert(data)
        if not new_id:
            return None
        if data.get("is_default"):
            self.set_default(new_id)
        return self.find(new_id)

    def set_default(self, template_id: int) -> None:
        """Make ``template_id`` the only default template."""
        self._store.query("START TRANSACTION")
        self._store.query(self._store.prepare(f"UPDATE {self.table} SET is_default = 0 WHERE id != %d", template_id))
        self._store.update(self.table, {"is_default": 1}, {"id": template_id})
        self._store.query("COMMIT")


class AnomaliesRepo(_Repo):
    table_name = "anomalies"
    json_columns = ("payload",)

    def create(self, data: dict[str, Any]) -> int | None:
        return self._insert(data)

    def count_for_client(self, client_id: int) -> int:
        sql = self._store.prepare(f"SELECT COUNT(*) FROM {self.table} WHERE client_id = %d", client_id)
        return int(self._store.get_var(sql) or 0)
