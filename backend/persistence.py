"""Row storage for chat messages and contact requests."""

import asyncio
import logging
import os
from typing import Any, Optional

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "chat_messages"
CONTACTS_TABLE = "contacts"


class SupabaseStore:
    """Supabase-backed store. The client is blocking, so calls run in a worker thread."""

    def __init__(self, client):
        self.client = client

    async def insert(self, table: str, record: dict[str, Any]) -> None:
        await asyncio.to_thread(lambda: self.client.table(table).insert(record).execute())

    async def update(self, table: str, fields: dict[str, Any], filters: dict[str, Any]) -> None:
        def run():
            query = self.client.table(table).update(fields)
            for column, value in filters.items():
                query = query.eq(column, value)
            return query.execute()

        await asyncio.to_thread(run)

    async def delete_where(self, table: str, filters: dict[str, Any]) -> None:
        def run():
            query = self.client.table(table).delete()
            for column, value in filters.items():
                query = query.eq(column, value)
            return query.execute()

        await asyncio.to_thread(run)


class InMemoryStore:
    """Dict-of-lists store used when Supabase is not configured."""

    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {}

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in filters.items())

    async def insert(self, table: str, record: dict[str, Any]) -> None:
        self.rows(table).append(dict(record))

    async def update(self, table: str, fields: dict[str, Any], filters: dict[str, Any]) -> None:
        for row in self.rows(table):
            if self._matches(row, filters):
                row.update(fields)

    async def delete_where(self, table: str, filters: dict[str, Any]) -> None:
        self.tables[table] = [r for r in self.rows(table) if not self._matches(r, filters)]


def build_store(url: Optional[str] = None, key: Optional[str] = None):
    """Supabase when credentials are present, otherwise an in-memory store."""
    url = url or os.getenv("SUPABASE_URL")
    key = key or os.getenv("SUPABASE_KEY")
    if url and key:
        from supabase import create_client

        return SupabaseStore(create_client(url, key))
    logger.warning("SUPABASE_URL/SUPABASE_KEY not set, keeping messages in memory only")
    return InMemoryStore()
