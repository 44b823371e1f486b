"""EventManager over a store without transactions (compensating rollback)."""

import logging

import pytest

from tablehooks.manager import EventManager

LOGGER = "tablehooks.manager.service"


@pytest.fixture
def manager(sqlite_store):
    return EventManager(sqlite_store)


def cancel_with(reason=None):
    def handler(event):
        event.cancel(reason)

    return handler


class TestCompensatingWrites:
    @pytest.mark.asyncio
    async def test_write_is_committed_before_post_hook(self, manager, sqlite_store, users):
        visible = []

        def check(event):
            visible.append(sqlite_store.select_one(users, users.c.id == event.row["id"]) is not None)

        manager.put(users, "post-insert", check)
        await manager.insert(users, {"id": 1})
        assert visible == [True]

    @pytest.mark.asyncio
    async def test_compensating_delete(self, manager, users, count_rows, caplog):
        manager.put(users, "post-insert", cancel_with("no"))
        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            response = await manager.insert(users, {"id": 1})
        assert response.message == "no"
        assert response.rollback_failed is False
        assert count_rows(users) == 0
        assert "compensating" in caplog.text

    @pytest.mark.asyncio
    async def test_compensating_delete_uses_primary_field(self, manager, sqlite_store, audit_log, count_rows):
        manager.put(audit_log, "post-insert", cancel_with("no"))
        response = await manager.insert(audit_log, {"message": "boot", "level": "info"}, primary_field="message")
        assert response.message == "no"
        assert response.rollback_failed is False
        assert count_rows(audit_log) == 0


class TestRollbackFailure:
    @pytest.mark.asyncio
    async def test_unresolvable_key_reports_failed_rollback(self, manager, audit_log, count_rows, caplog):
        manager.put(audit_log, "post-insert", cancel_with("no"))
        with caplog.at_level(logging.ERROR, logger=LOGGER):
            response = await manager.insert(audit_log, {"message": "boot"})
        assert response.message == "no"
        assert response.rollback_failed is True
        assert response.to_dict() == {"type": "error", "message": "no", "rollback_failed": True}
        assert count_rows(audit_log) == 1
        assert "Cannot roll back insert" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_primary_field_reports_failed_rollback(self, manager, users, count_rows):
        manager.put(users, "post-insert", cancel_with("no"))
        response = await manager.insert(users, {"id": 1}, primary_field="nope")
        assert response.rollback_failed is True
        assert count_rows(users) == 1

    @pytest.mark.asyncio
    async def test_failed_snapshot_restore(self, manager, sqlite_store, users, fetch_rows, monkeypatch, caplog):
        sqlite_store.insert_row(users, {"id": 1, "name": "Ada"})

        def broken_update(*args, **kwargs):
            raise RuntimeError("disk full")

        def sabotage(event):
            monkeypatch.setattr(sqlite_store, "update_rows", broken_update)
            event.cancel("undo")

        manager.put(users, "post-update", sabotage)
        with caplog.at_level(logging.ERROR, logger=LOGGER):
            response = await manager.update(users, 1, {"name": "Grace"})

        assert response.message == "undo"
        assert response.rollback_failed is True
        assert fetch_rows(users)[0]["name"] == "Grace"
        assert "Restoring users row snapshot failed" in caplog.text

    @pytest.mark.asyncio
    async def test_batch_compensation_continues_past_failures(self, manager, sqlite_store, users, fetch_rows, monkeypatch):
        for i in (1, 2, 3):
            sqlite_store.insert_row(users, {"id": i, "name": f"user{i}"})

        original_insert = sqlite_store.insert_row

        def flaky_insert(table, payload):
            if payload["id"] == 1:
                raise RuntimeError("constraint")
            return original_insert(table, payload)

        def sabotage(event):
            monkeypatch.setattr(sqlite_store, "insert_row", flaky_insert)
            event.cancel("restore")

        manager.put(users, "post-delete", sabotage)
        response = await manager.delete_batch(users, [1, 2, 3])

        assert response.message == "restore"
        assert response.rollback_failed is True
        assert [row["id"] for row in fetch_rows(users)] == [2, 3]

    @pytest.mark.asyncio
    async def test_no_compensation_without_rollback(self, sqlite_store, audit_log, count_rows):
        manager = EventManager(sqlite_store, {"rollback_on_cancel": False})
        manager.put(audit_log, "post-insert", cancel_with("no"))
        response = await manager.insert(audit_log, {"message": "boot"})
        assert response.rollback_failed is False
        assert count_rows(audit_log) == 1


class TestSnapshotRestore:
    @pytest.mark.asyncio
    async def test_restore_after_key_change(self, manager, sqlite_store, users, fetch_rows):
        sqlite_store.insert_row(users, {"id": 1, "name": "Ada"})
        before = fetch_rows(users)
        manager.put(users, "post-update", cancel_with("no"))

        response = await manager.update(users, 1, {"id": 5, "name": "Eve"})

        assert response.message == "no"
        assert response.rollback_failed is False
        assert fetch_rows(users) == before

    @pytest.mark.asyncio
    async def test_batch_restore_after_key_change(self, manager, sqlite_store, users, fetch_rows):
        sqlite_store.insert_row(users, {"id": 1, "name": "Ada"})
        sqlite_store.insert_row(users, {"id": 2, "name": "Bob"})
        before = fetch_rows(users)

        def reject_last(event):
            if event.row["id"] == 20:
                event.cancel("undo")

        manager.put(users, "post-update", reject_last)
        response = await manager.update_batch(users, [(1, {"id": 10}), (2, {"id": 20})])

        assert response.message == "undo"
        assert response.rollback_failed is False
        assert fetch_rows(users) == before

    @pytest.mark.asyncio
    async def test_restore_matching_no_row_is_reported(self, manager, sqlite_store, users, count_rows, caplog):
        sqlite_store.insert_row(users, {"id": 1, "name": "Ada"})

        def remove_and_cancel(event):
            sqlite_store.delete_rows(users, users.c.id == event.row["id"])
            event.cancel("undo")

        manager.put(users, "post-update", remove_and_cancel)
        with caplog.at_level(logging.ERROR, logger=LOGGER):
            response = await manager.update(users, 1, {"name": "Grace"})

        assert response.message == "undo"
        assert response.rollback_failed is True
        assert count_rows(users) == 0
        assert "matched no row" in caplog.text

    @pytest.mark.asyncio
    async def test_post_update_row_edits_do_not_redirect_restore(self, manager, sqlite_store, users, fetch_rows):
        sqlite_store.insert_row(users, {"id": 1, "name": "Ada"})
        sqlite_store.insert_row(users, {"id": 2, "name": "Bob"})
        before = fetch_rows(users)

        def retarget_and_cancel(event):
            event.row["id"] = 2
            event.cancel("undo")

        manager.put(users, "post-update", retarget_and_cancel)
        response = await manager.update(users, 1, {"name": "Grace"})

        assert response.rollback_failed is False
        assert fetch_rows(users) == before


class TestPostInsertIsolation:
    @pytest.mark.asyncio
    async def test_row_edits_do_not_redirect_compensating_delete(self, manager, sqlite_store, users, fetch_rows):
        sqlite_store.insert_row(users, {"id": 2, "name": "Bob"})

        def retarget_and_cancel(event):
            event.row["id"] = 2
            event.cancel("no")

        manager.put(users, "post-insert", retarget_and_cancel)
        response = await manager.insert(users, {"id": 1, "name": "Ada"})

        assert response.message == "no"
        assert response.rollback_failed is False
        assert [row["id"] for row in fetch_rows(users)] == [2]

    @pytest.mark.asyncio
    async def test_returned_row_unaffected_by_handler_edits(self, sqlite_store, users):
        manager = EventManager(sqlite_store)
        manager.put(users, "post-insert", lambda e: e.row.update(name="edited"))
        response = await manager.insert(users, {"id": 1, "name": "Ada"})
        assert response.data["name"] == "Ada"


class TestIncompleteBatch:
    @pytest.mark.asyncio
    async def test_update_batch_with_vanished_row(self, manager, sqlite_store, users, fetch_rows):
        sqlite_store.insert_row(users, {"id": 1, "name": "Ada"})
        sqlite_store.insert_row(users, {"id": 2, "name": "Bob"})

        def remove_bob(event):
            if event.row["id"] == 2:
                sqlite_store.delete_rows(users, users.c.id == 2)

        manager.put(users, "pre-update", remove_bob)
        response = await manager.update_batch(users, [(1, {"name": "x"}), (2, {"name": "y"})])

        assert response.message == "An error occurred while updating the data."
        assert response.rollback_failed is False
        assert fetch_rows(users) == [{"id": 1, "name": "Ada", "email": None, "meta": None}]
