import os
import sys
from typing import Dict, List

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class FakeResponse:
    def __init__(self, data=None, count=None):
        self.data = data if data is not None else []
        self.count = count


class FakeQuery:
    """Records a supabase-py query chain; execute() pops the next queued response for the table"""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.calls = []

    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)

        def chain(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return chain

    def execute(self):
        self.db.executed.append((self.table, self.calls))
        queue = self.db.responses.get(self.table) or []
        if queue:
            response = queue.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return FakeResponse()


class FakeSupabase:
    def __init__(self):
        self.responses: Dict[str, List] = {}
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        query = FakeQuery(self, f"rpc:{name}")
        query.calls.append(("rpc", (params,), {}))
        return query

    def queue(self, table, data=None, count=None):
        self.responses.setdefault(table, []).append(FakeResponse(data, count))
        return self

    def fail(self, table, error):
        self.responses.setdefault(table, []).append(error)
        return self

    def payloads(self, table, op):
        """First positional argument of every `op` call made on `table`"""
        return [
            args[0] if args else kwargs
            for t, calls in self.executed if t == table
            for name, args, kwargs in calls if name == op
        ]

    def ops(self, table):
        return [[name for name, _, _ in calls] for t, calls in self.executed if t == table]

    def filters(self, table, op="eq"):
        return [args for t, calls in self.executed if t == table for name, args, _ in calls if name == op]


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def farmer():
    return {
        "id": "a1b2c3d4-0000-4000-8000-000000000001",
        "email": "wanjiku@example.com",
        "role": "authenticated",
        "created_at": "2024-01-01T00:00:00+00:00",
    }
