"""EventManager over a store with native transactions."""

import logging

import pytest

from tablehooks.errors import EventRollback
from tablehooks.manager import INSERT_FAILED, EventManager

LOGGER = "tablehooks.manager.service"


@pytest.fixture
def manager(pg_store):
    return EventManager(pg_store)


def cancel_with(reason=None):
    def handler(event):
        event.cancel(reason)

    return handler


class TestTransactionBoundary:
    @pytest.mark.asyncio
    async def test_operations_run_in_transaction(self, manager, pg_store, users, monkeypatch):
        calls = []
        original = pg_store.run_in_transaction

        async def spy(fn):
            calls.append(fn)
            return await original(fn)

        monkeypatch.setattr(pg_store, "run_in_transaction", spy)
        await manager.insert(users, {"id": 1})
        await manager.update(users, 1, {"name": "x"})
        await manager.delete(users, 1)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_no_transaction_without_rollback(self, pg_store, users, monkeypatch, count_rows):
        manager = EventManager(pg_store, {"rollback_on_cancel": False})

        async def forbidden(fn):
            raise AssertionError("transaction not expected")

        monkeypatch.setattr(pg_store, "run_in_transaction", forbidden)
        manager.put(users, "post-insert", cancel_with("no"))
        response = await manager.insert(users, {"id": 1})
        assert response.message == "no"
        assert count_rows(users) == 1

    @pytest.mark.asyncio
    async def test_rollback_signal_never_escapes(self, manager, users, caplog):
        manager.put(users, "post-insert", cancel_with("abort"))
        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            response = await manager.insert(users, {"id": 1})
        assert response.message == "abort"
        assert response.rollback_failed is False
        assert "Transaction rolled back: abort" in caplog.text

    @pytest.mark.asyncio
    async def test_commit_failure_maps_to_generic_message(self, manager, pg_store, users, monkeypatch):
        async def failing(fn):
            raise RuntimeError("connection lost")

        monkeypatch.setattr(pg_store, "run_in_transaction", failing)
        response = await manager.insert(users, {"id": 1})
        assert response.message == INSERT_FAILED

    @pytest.mark.asyncio
    async def test_rollback_signal_from_store_is_reported(self, manager, pg_store, users, monkeypatch):
        async def vetoing(fn):
            raise EventRollback("vetoed by store")

        monkeypatch.setattr(pg_store, "run_in_transaction", vetoing)
        response = await manager.delete(users, 1)
        assert response.message == "vetoed by store"


class TestFailFast:
    @pytest.mark.asyncio
    async def test_batch_post_cancel_stops_remaining_hooks(self, manager, users, count_rows):
        seen = []

        def reject_first(event):
            seen.append(event.row["id"])
            event.cancel("first rejected")

        manager.put(users, "post-insert", reject_first)
        response = await manager.insert_batch(users, [{"id": 1}, {"id": 2}, {"id": 3}])
        assert response.message == "first rejected"
        assert seen == [1]
        assert count_rows(users) == 0

    @pytest.mark.asyncio
    async def test_store_failure_mid_batch_rolls_back(self, manager, pg_store, users, count_rows):
        pg_store.insert_row(users, {"id": 3})
        response = await manager.insert_batch(users, [{"id": 1}, {"id": 2}, {"id": 3}])
        assert response.message == INSERT_FAILED
        assert count_rows(users) == 1

    @pytest.mark.asyncio
    async def test_update_rollback_restores_json(self, manager, pg_store, users, fetch_rows):
        pg_store.insert_row(users, {"id": 1, "meta": {"a": 1, "arr": [1]}})
        manager.put(users, "post-update", cancel_with("no"))
        response = await manager.update(users, 1, {"meta": {"b": 2, "arr": [2]}})
        assert response.message == "no"
        assert fetch_rows(users)[0]["meta"] == {"a": 1, "arr": [1]}

    @pytest.mark.asyncio
    async def test_delete_rollback_keeps_row(self, manager, pg_store, users, count_rows):
        pg_store.insert_row(users, {"id": 1})
        manager.put(users, "post-delete", cancel_with("no"))
        response = await manager.delete(users, 1)
        assert response.message == "no"
        assert response.rollback_failed is False
        assert count_rows(users) == 1
