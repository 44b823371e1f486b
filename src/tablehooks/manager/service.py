"""Mutation orchestration for tablehooks.

EventManager wraps every insert, update and delete issued to a
RecordStore in a pre-hook -> write -> post-hook lifecycle:

    insert:  pre-insert(data)        -> INSERT ... RETURNING -> post-insert(row)
    update:  pre-update(data, row)   -> merge -> UPDATE      -> post-update(row, old_row)
    delete:  pre-delete(row)         -> DELETE               -> post-delete(row)

A pre-hook cancel stops the operation before anything is written. A
post-hook cancel, with rollback_on_cancel enabled, undoes the write:
- transactional stores: the whole sequence runs in one transaction and
  the cancel aborts it (EventRollback)
- other stores: a compensating statement is issued right away
  (delete after insert, snapshot restore after update, re-insert after
  delete). This is best effort and not atomic with the original write;
  a failed compensation is reported with Response.rollback_failed.

Every public operation returns a Response and never raises for store
failures or cancellations.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from sqlalchemy import Table
from sqlalchemy.sql.elements import ColumnElement

from tablehooks.core.merge import deep_merge
from tablehooks.core.types import Response
from tablehooks.errors import EventRollback
from tablehooks.hooks.registry import HookFn, HookRegistration, HookRegistry, RoutingKey
from tablehooks.hooks.service import HookService
from tablehooks.hooks.types import (
    EVENT_CLASSES,
    CancellableEvent,
    EventKind,
    EventPriority,
    PostDeleteEvent,
    PostInsertEvent,
    PostUpdateEvent,
    PreDeleteEvent,
    PreInsertEvent,
    PreUpdateEvent,
)
from tablehooks.manager.config import EventManagerConfig
from tablehooks.persistence.adapter import OperationType, RecordStore, Row, StoreOperation
from tablehooks.persistence.keys import PrimaryKeyResolver, Selection

logger = logging.getLogger(__name__)

INSERT_FAILED = "An error occurred while inserting the data."
UPDATE_FAILED = "An error occurred while updating the data."
DELETE_FAILED = "An error occurred while deleting the data."
ROW_NOT_FOUND = "The row does not exist."

Where = ColumnElement[bool]


class EventManager:
    """Runs lifecycle hooks around mutations issued to a RecordStore.

    The rollback strategy is chosen by the store: one advertising
    ``supports_transactions`` gets transactional rollback, any other gets
    compensating statements. Control flow is otherwise identical.

    Example:
        manager = EventManager(SQLiteStore(engine), {"array_strategy": "concat"})

        async def stamp(event):
            event.data["source"] = "import"

        manager.put(users, "pre-insert", stamp)
        response = await manager.insert(users, {"id": 1, "name": "Ada"})
    """

    def __init__(
        self,
        store: RecordStore,
        config: EventManagerConfig | Mapping[str, Any] | None = None,
    ) -> None:
        self._store = store
        self._config = EventManagerConfig.from_overrides(config)
        self.hooks = HookRegistry()
        self._hook_service = HookService(self.hooks)
        self._keys = PrimaryKeyResolver(store)

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def config(self) -> EventManagerConfig:
        return self._config

    @property
    def keys(self) -> PrimaryKeyResolver:
        return self._keys

    @property
    def _transactional(self) -> bool:
        return self._config.rollback_on_cancel and self._store.supports_transactions

    # ------------------------------------------------------------------
    # Hook registration and dispatch
    # ------------------------------------------------------------------

    def routing_key(self, table: Table, kind: EventKind | str) -> RoutingKey:
        return (self._keys.table_identity(table), EventKind(kind))

    def put(
        self,
        table: Table,
        kind: EventKind | str,
        handler: HookFn,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> HookRegistration:
        """Register ``handler`` for ``kind`` events on ``table``.

        Raises:
            ValueError: If ``kind`` is not a known event kind
        """
        return self.hooks.register(self.routing_key(table, kind), handler, priority)

    async def run(
        self, table: Table, kind: EventKind | str, event: CancellableEvent
    ) -> CancellableEvent:
        """Emit ``event`` to the handlers registered for ``kind`` on ``table``."""
        kind = EventKind(kind)
        expected = EVENT_CLASSES[kind]
        if not isinstance(event, expected):
            raise TypeError(
                f"{kind.value} expects {expected.__name__}, got {type(event).__name__}"
            )
        return await self._hook_service.emit(self.routing_key(table, kind), event)

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    async def insert(
        self, table: Table, data: Mapping[str, Any], *, primary_field: str | None = None
    ) -> Response[Row]:
        """Insert one row.

        Args:
            table: Target table
            data: Row payload; pre-insert handlers may modify it
            primary_field: Field identifying the new row for a compensating
                delete; defaults to the declared primary key

        Returns:
            success(row as persisted) or error(message)
        """
        if self._transactional:
            return await self._in_transaction(
                lambda store: self._insert(store, table, data, primary_field), INSERT_FAILED
            )
        return await self._insert(self._store, table, data, primary_field)

    async def insert_batch(
        self,
        table: Table,
        rows: Sequence[Mapping[str, Any]],
        *,
        primary_field: str | None = None,
    ) -> Response[list[Row]]:
        """Insert several rows with one batch statement.

        Every pre-insert runs before anything is written; one cancel aborts
        the whole batch. A post-insert cancel undoes every row of the batch
        when rollback_on_cancel is enabled.
        """
        if not rows:
            return Response.success([])
        if self._transactional:
            return await self._in_transaction(
                lambda store: self._insert_batch(store, table, rows, primary_field), INSERT_FAILED
            )
        return await self._insert_batch(self._store, table, rows, primary_field)

    async def _insert(
        self,
        store: RecordStore,
        table: Table,
        data: Mapping[str, Any],
        primary_field: str | None,
    ) -> Response[Row]:
        pre = await self.run(table, EventKind.PRE_INSERT, PreInsertEvent(table=table, data=dict(data)))
        if pre.is_cancelled:
            return Response.error(pre.cancel_reason)

        try:
            results = store.insert_row(table, pre.data)
        except Exception:
            logger.warning("Insert into %s failed", table.name, exc_info=True)
            return Response.error(INSERT_FAILED)

        if not results:
            return Response.error(INSERT_FAILED)

        row = results[0]

        post = await self.run(table, EventKind.POST_INSERT, PostInsertEvent(table=table, row=copy.deepcopy(row)))
        if post.is_cancelled:
            return self._post_cancelled(
                post.cancel_reason,
                lambda: self._undo_insert(store, table, [row], primary_field),
            )

        return Response.success(row)

    async def _insert_batch(
        self,
        store: RecordStore,
        table: Table,
        rows: Sequence[Mapping[str, Any]],
        primary_field: str | None,
    ) -> Response[list[Row]]:
        payloads: list[Row] = []
        for data in rows:
            pre = await self.run(
                table, EventKind.PRE_INSERT, PreInsertEvent(table=table, data=dict(data))
            )
            if pre.is_cancelled:
                return Response.error(pre.cancel_reason)
            payloads.append(pre.data)

        operations = [
            StoreOperation(op_type=OperationType.INSERT, table=table, payload=payload)
            for payload in payloads
        ]
        try:
            results = store.batch_execute(operations)
        except Exception:
            logger.warning("Batch insert into %s failed", table.name, exc_info=True)
            return Response.error(INSERT_FAILED)

        inserted = [result[0] for result in results if result]
        if len(inserted) != len(payloads):
            return self._write_incomplete(
                INSERT_FAILED, lambda: self._undo_insert(store, table, inserted, primary_field)
            )

        for row in inserted:
            post = await self.run(table, EventKind.POST_INSERT, PostInsertEvent(table=table, row=copy.deepcopy(row)))
            if post.is_cancelled:
                return self._post_cancelled(
                    post.cancel_reason,
                    lambda: self._undo_insert(store, table, inserted, primary_field),
                )

        return Response.success(inserted)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update(
        self,
        table: Table,
        primary_value: Any,
        data: Mapping[str, Any],
        *,
        primary_field: str | None = None,
    ) -> Response[Row]:
        """Update the row identified by ``primary_value``.

        Args:
            table: Target table
            primary_value: Key value, or a partial row holding the key
                field(s); composite keys require the partial-row form
            data: Fields to change; with merge_objects enabled, mapping and
                list values are deep-merged into the stored values
            primary_field: Explicit key field, skips primary-key lookup

        Returns:
            success(updated row) or error(message)
        """
        selection = self._select(table, primary_value, primary_field)
        if selection.error:
            return Response.error(selection.error)
        where = selection.where

        if self._transactional:
            return await self._in_transaction(
                lambda store: self._update(store, table, where, data, primary_field), UPDATE_FAILED
            )
        return await self._update(self._store, table, where, data, primary_field)

    async def update_batch(
        self,
        table: Table,
        changes: Sequence[tuple[Any, Mapping[str, Any]]],
        *,
        primary_field: str | None = None,
    ) -> Response[list[Row]]:
        """Update several rows, given as ``(primary_value, data)`` pairs.

        All rows are loaded and all pre-update hooks run before any write.
        A post-update cancel restores every row of the batch when
        rollback_on_cancel is enabled.
        """
        targets: list[tuple[Where, Mapping[str, Any]]] = []
        for primary_value, data in changes:
            selection = self._select(table, primary_value, primary_field)
            if selection.error:
                return Response.error(selection.error)
            targets.append((selection.where, data))

        if not targets:
            return Response.success([])
        if self._transactional:
            return await self._in_transaction(
                lambda store: self._update_batch(store, table, targets, primary_field), UPDATE_FAILED
            )
        return await self._update_batch(self._store, table, targets, primary_field)

    async def _update(
        self,
        store: RecordStore,
        table: Table,
        where: Where,
        data: Mapping[str, Any],
        primary_field: str | None,
    ) -> Response[Row]:
        try:
            old_row = store.select_one(table, where)
        except Exception:
            logger.warning("Loading %s row for update failed", table.name, exc_info=True)
            return Response.error(UPDATE_FAILED)

        if old_row is None:
            return Response.error(ROW_NOT_FOUND)

        pre = await self.run(
            table,
            EventKind.PRE_UPDATE,
            PreUpdateEvent(table=table, data=dict(data), row=copy.deepcopy(old_row)),
        )
        if pre.is_cancelled:
            return Response.error(pre.cancel_reason)

        payload = self._merge_into(old_row, pre.data)

        try:
            results = store.update_rows(table, where, payload)
        except Exception:
            logger.warning("Update of %s failed", table.name, exc_info=True)
            return Response.error(UPDATE_FAILED)

        if not results:
            return Response.error(UPDATE_FAILED)

        row = results[0]

        post = await self.run(
            table,
            EventKind.POST_UPDATE,
            PostUpdateEvent(table=table, row=copy.deepcopy(row), old_row=copy.deepcopy(old_row)),
        )
        if post.is_cancelled:
            return self._post_cancelled(
                post.cancel_reason,
                lambda: self._undo_update(store, table, [(row, old_row)], primary_field),
            )

        return Response.success(row)

    async def _update_batch(
        self,
        store: RecordStore,
        table: Table,
        targets: list[tuple[Where, Mapping[str, Any]]],
        primary_field: str | None,
    ) -> Response[list[Row]]:
        loaded: list[tuple[Where, Mapping[str, Any], Row]] = []
        for where, data in targets:
            try:
                old_row = store.select_one(table, where)
            except Exception:
                logger.warning("Loading %s rows for update failed", table.name, exc_info=True)
                return Response.error(UPDATE_FAILED)
            if old_row is None:
                return Response.error(ROW_NOT_FOUND)
            loaded.append((where, data, old_row))

        planned: list[tuple[Where, Row, Row]] = []
        for where, data, old_row in loaded:
            pre = await self.run(
                table,
                EventKind.PRE_UPDATE,
                PreUpdateEvent(table=table, data=dict(data), row=copy.deepcopy(old_row)),
            )
            if pre.is_cancelled:
                return Response.error(pre.cancel_reason)
            planned.append((where, old_row, self._merge_into(old_row, pre.data)))

        operations = [
            StoreOperation(op_type=OperationType.UPDATE, table=table, payload=payload, where=where)
            for where, _, payload in planned
        ]
        try:
            results = store.batch_execute(operations)
        except Exception:
            logger.warning("Batch update of %s failed", table.name, exc_info=True)
            return Response.error(UPDATE_FAILED)

        if not all(results):
            written = [(result[0], old_row) for (_, old_row, _), result in zip(planned, results) if result]
            return self._write_incomplete(
                UPDATE_FAILED, lambda: self._undo_update(store, table, written, primary_field)
            )

        updated = [result[0] for result in results]
        restores = [(row, old_row) for (_, old_row, _), row in zip(planned, updated)]

        for (_, old_row, _), row in zip(planned, updated):
            post = await self.run(
                table,
                EventKind.POST_UPDATE,
                PostUpdateEvent(table=table, row=copy.deepcopy(row), old_row=copy.deepcopy(old_row)),
            )
            if post.is_cancelled:
                return self._post_cancelled(
                    post.cancel_reason,
                    lambda: self._undo_update(store, table, restores, primary_field),
                )

        return Response.success(updated)

    def _merge_into(self, old_row: Row, data: Mapping[str, Any]) -> Row:
        """Deep-merge stored values under the keys ``data`` defines.

        Keys absent from ``data`` stay out of the payload.
        """
        payload = dict(data)
        if not self._config.merge_objects:
            return payload

        for key, old_value in old_row.items():
            if key in payload:
                payload[key] = deep_merge(old_value, payload[key], self._config.array_strategy)

        return payload

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(
        self, table: Table, primary_value: Any, *, primary_field: str | None = None
    ) -> Response[Row]:
        """Delete the row identified by ``primary_value``.

        Returns:
            success(deleted row snapshot) or error(message)
        """
        selection = self._select(table, primary_value, primary_field)
        if selection.error:
            return Response.error(selection.error)
        where = selection.where

        if self._transactional:
            return await self._in_transaction(
                lambda store: self._delete(store, table, where), DELETE_FAILED
            )
        return await self._delete(self._store, table, where)

    async def delete_batch(
        self,
        table: Table,
        primary_values: Sequence[Any],
        *,
        primary_field: str | None = None,
    ) -> Response[list[Row]]:
        """Delete several rows. All-or-nothing like insert_batch()."""
        targets: list[Where] = []
        for primary_value in primary_values:
            selection = self._select(table, primary_value, primary_field)
            if selection.error:
                return Response.error(selection.error)
            targets.append(selection.where)

        if not targets:
            return Response.success([])
        if self._transactional:
            return await self._in_transaction(
                lambda store: self._delete_batch(store, table, targets), DELETE_FAILED
            )
        return await self._delete_batch(self._store, table, targets)

    async def _delete(self, store: RecordStore, table: Table, where: Where) -> Response[Row]:
        try:
            row = store.select_one(table, where)
        except Exception:
            logger.warning("Loading %s row for delete failed", table.name, exc_info=True)
            return Response.error(DELETE_FAILED)

        if row is None:
            return Response.error(ROW_NOT_FOUND)

        pre = await self.run(table, EventKind.PRE_DELETE, PreDeleteEvent(table=table, row=copy.deepcopy(row)))
        if pre.is_cancelled:
            return Response.error(pre.cancel_reason)

        try:
            store.delete_rows(table, where)
        except Exception:
            logger.warning("Delete from %s failed", table.name, exc_info=True)
            return Response.error(DELETE_FAILED)

        post = await self.run(table, EventKind.POST_DELETE, PostDeleteEvent(table=table, row=copy.deepcopy(row)))
        if post.is_cancelled:
            return self._post_cancelled(
                post.cancel_reason, lambda: self._undo_delete(store, table, [row])
            )

        return Response.success(row)

    async def _delete_batch(
        self, store: RecordStore, table: Table, targets: list[Where]
    ) -> Response[list[Row]]:
        rows: list[Row] = []
        for where in targets:
            try:
                row = store.select_one(table, where)
            except Exception:
                logger.warning("Loading %s rows for delete failed", table.name, exc_info=True)
                return Response.error(DELETE_FAILED)
            if row is None:
                return Response.error(ROW_NOT_FOUND)
            rows.append(row)

        for row in rows:
            pre = await self.run(table, EventKind.PRE_DELETE, PreDeleteEvent(table=table, row=copy.deepcopy(row)))
            if pre.is_cancelled:
                return Response.error(pre.cancel_reason)

        operations = [
            StoreOperation(op_type=OperationType.DELETE, table=table, where=where)
            for where in targets
        ]
        try:
            store.batch_execute(operations)
        except Exception:
            logger.warning("Batch delete from %s failed", table.name, exc_info=True)
            return Response.error(DELETE_FAILED)

        for row in rows:
            post = await self.run(table, EventKind.POST_DELETE, PostDeleteEvent(table=table, row=copy.deepcopy(row)))
            if post.is_cancelled:
                return self._post_cancelled(
                    post.cancel_reason, lambda: self._undo_delete(store, table, rows)
                )

        return Response.success(rows)

    # ------------------------------------------------------------------
    # Key selection
    # ------------------------------------------------------------------

    def _select(self, table: Table, primary_value: Any, primary_field: str | None) -> Selection:
        resolution = self._keys.resolve(table, primary_field)
        if resolution.error:
            return Selection(error=f"{resolution.error} Pass a primary_field explicitly.")
        return self._keys.build_selector(table, resolution.keys, primary_value)

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def _in_transaction(
        self,
        fn: Callable[[RecordStore], Awaitable[Response[Any]]],
        failure_message: str,
    ) -> Response[Any]:
        """Run ``fn`` inside one store transaction.

        Any error response aborts the transaction, so nothing written by
        ``fn`` survives a cancel or a failed statement.
        """

        async def guarded(store: RecordStore) -> Response[Any]:
            response = await fn(store)
            if not response.ok:
                raise EventRollback(response.message, response=response)
            return response

        try:
            return await self._store.run_in_transaction(guarded)
        except EventRollback as rollback:
            logger.debug("Transaction rolled back: %s", rollback.reason)
            if rollback.response is not None:
                return rollback.response
            return Response.error(rollback.reason)
        except Exception:
            logger.warning("Transaction failed: %s", failure_message, exc_info=True)
            return Response.error(failure_message)

    def _post_cancelled(self, reason: str | None, compensate: Callable[[], bool]) -> Response[Any]:
        """Handle a post-hook cancel.

        Inside a transaction this raises EventRollback; otherwise the
        compensating action runs (when rollback_on_cancel is enabled).
        """
        if not self._config.rollback_on_cancel:
            return Response.error(reason)

        if self._store.supports_transactions:
            raise EventRollback(reason)

        logger.debug("Post-hook cancelled (%s); compensating", reason)
        return Response.error(reason, rollback_failed=not compensate())

    def _write_incomplete(self, message: str, compensate: Callable[[], bool]) -> Response[Any]:
        """A batch write returned fewer rows than statements issued."""
        if self._config.rollback_on_cancel and not self._store.supports_transactions:
            return Response.error(message, rollback_failed=not compensate())
        return Response.error(message)

    def _undo_insert(
        self,
        store: RecordStore,
        table: Table,
        rows: list[Row],
        primary_field: str | None,
    ) -> bool:
        resolution = self._keys.resolve(table, primary_field)
        if resolution.error:
            logger.error(
                "Cannot roll back insert into %s: %s", table.name, resolution.error
            )
            return False

        ok = True
        for row in rows:
            try:
                store.delete_rows(table, self._keys.where_from_keys(table, resolution.keys, row))
            except Exception:
                logger.exception("Compensating delete from %s failed", table.name)
                ok = False
        return ok

    def _undo_update(
        self,
        store: RecordStore,
        table: Table,
        restores: list[tuple[Row, Row]],
        primary_field: str | None,
    ) -> bool:
        """Write each ``(row, old_row)`` snapshot back over the updated row.

        The updated row is selected by its current key values, since the
        update may have changed them.
        """
        resolution = self._keys.resolve(table, primary_field)
        if resolution.error:
            logger.error(
                "Cannot roll back update of %s: %s", table.name, resolution.error
            )
            return False

        ok = True
        for row, old_row in restores:
            try:
                where = self._keys.where_from_keys(table, resolution.keys, row)
                if not store.update_rows(table, where, old_row):
                    logger.error("Restoring %s row snapshot matched no row", table.name)
                    ok = False
            except Exception:
                logger.exception("Restoring %s row snapshot failed", table.name)
                ok = False
        return ok

    def _undo_delete(self, store: RecordStore, table: Table, rows: list[Row]) -> bool:
        ok = True
        for row in rows:
            try:
                store.insert_row(table, row)
            except Exception:
                logger.exception("Compensating re-insert into %s failed", table.name)
                ok = False
        return ok
