"""Shared fixtures: an in-memory stand-in for the Supabase client."""
import sys
from pathlib import Path
from types import SimpleNamespace
from uuid import uuid4

import pytest

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable subset of the PostgREST query builder used by db.py."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self._order = None
        self._limit = None
        self._count = None

    def select(self, *columns, count=None):
        self.op = "select"
        self._count = count
        return self

    def insert(self, row):
        self.op = "insert"
        self.payload = row
        return self

    def update(self, updates):
        self.op = "update"
        self.payload = updates
        return self

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def execute(self):
        if self.table in self.client.failing_tables:
            raise RuntimeError(f"{self.table} unavailable")
        self.client.calls.append((self.table, self.op, self.payload))
        rows = self.client.tables.setdefault(self.table, [])

        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for row in new_rows:
                stored = {"id": str(uuid4()), **row}
                rows.append(stored)
                created.append(dict(stored))
            return FakeResponse(created)

        matched = [r for r in rows if all(f(r) for f in self.filters)]
        if self.op == "update":
            for r in matched:
                r.update(self.payload)
            return FakeResponse([dict(r) for r in matched])

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: str(r.get(column) or ""), reverse=desc)
        total = len(matched)
        if self._limit is not None:
            matched = matched[: self._limit]
        return FakeResponse([dict(r) for r in matched], count=total if self._count else None)


class FakeAuth:
    def __init__(self, user=None):
        self.user = user

    def get_user(self):
        if self.user is None:
            return None
        return SimpleNamespace(user=self.user)

    def sign_out(self):
        self.user = None


class FakeClient:
    def __init__(self, tables=None, user=None):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.auth = FakeAuth(user)
        self.calls = []
        self.rpc_calls = []
        self.failing_tables = set()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, fn, params):
        self.rpc_calls.append((fn, params))
        return SimpleNamespace(execute=lambda: FakeResponse([]))


@pytest.fixture
def teacher():
    return SimpleNamespace(id="teacher-1", email="teacher@school.edu")


@pytest.fixture
def make_client():
    def _make(tables=None, user=None):
        return FakeClient(tables=tables, user=user)
    return _make
