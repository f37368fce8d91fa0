"""Single-pass reconciliation between the local store and the remote API.

A pass runs three phases in strict order:

1. upload every record with pending local changes (creates, updates and
   tombstone deletes), swallowing per-record transport failures;
2. download the remote list, inserting unknown records, refreshing stale
   synced ones and resolving conflicts for records whose upload failed;
3. purge tombstones whose deletion reached the server.

The remote list is fetched before the upload so a failed fetch aborts the
pass before anything is written. A record that was created remotely but
whose completion update failed keeps its new server id and stays pending;
the next pass updates it instead of creating it again.
"""

import logging
from typing import List, Optional, Set, Tuple

from ..errors import (
    FetchError, PartialWriteError, RemoteNotFoundError, SyncInProgressError, TransportError,
)
from ..todo import TodoItem, is_purgeable
from .local_service import LocalTodoService
from .models import ConflictStrategy, SyncConflict, SyncReport, SyncResult
from .remote import TodoApiClient


logger = logging.getLogger(__name__)

Change = Tuple[Optional[TodoItem], TodoItem]


class ConflictResolver:
    """Resolves a locally edited record against its remote version."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def resolve(self, local: TodoItem, remote: TodoItem,
                strategy: ConflictStrategy) -> Optional[TodoItem]:
        """Pick the surviving version.

        Args:
            local: Local record with unsynced edits
            remote: Remote record sharing its server id
            strategy: Resolution strategy to use

        Returns:
            The synced record to store, or None if the strategy declines
        """
        if strategy == ConflictStrategy.LOCAL_WINS:
            return self._resolve_local_wins(local)
        elif strategy == ConflictStrategy.REMOTE_WINS:
            return self._resolve_remote_wins(local, remote)
        elif strategy == ConflictStrategy.MERGE_LATEST:
            return self._resolve_merge_latest(local, remote)
        self.logger.warning(f"Unknown conflict strategy: {strategy}")
        return None

    def _resolve_local_wins(self, local: TodoItem) -> TodoItem:
        return local.mark_synced()

    def _resolve_remote_wins(self, local: TodoItem, remote: TodoItem) -> TodoItem:
        return local.adopt_remote(remote)

    def _resolve_merge_latest(self, local: TodoItem, remote: TodoItem) -> TodoItem:
        # Ties go to the remote version.
        if local.modified_at > remote.modified_at:
            return self._resolve_local_wins(local)
        return self._resolve_remote_wins(local, remote)


class SyncEngine:
    """Runs sync passes between a ``LocalTodoService`` and a ``TodoApiClient``."""

    def __init__(self, api: TodoApiClient, local: LocalTodoService,
                 default_strategy: ConflictStrategy = ConflictStrategy.MERGE_LATEST):
        self.api = api
        self.local = local
        self.default_strategy = default_strategy
        self.conflict_resolver = ConflictResolver()
        self.logger = logging.getLogger(__name__)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _begin(self) -> None:
        if self._running:
            raise SyncInProgressError("A sync is already in progress")
        self._running = True

    async def sync(self, strategy: Optional[ConflictStrategy] = None) -> SyncReport:
        """Run one complete upload, download and cleanup pass.

        Args:
            strategy: Conflict strategy, the engine default if None

        Returns:
            Report of the pass. Remote list failures yield an ``ERROR`` report.

        Raises:
            SyncInProgressError: If another pass is running
            StorageError: If the local store cannot be read or written
        """
        self._begin()
        try:
            return await self._sync(strategy or self.default_strategy)
        finally:
            self._running = False

    async def _sync(self, strategy: ConflictStrategy) -> SyncReport:
        report = SyncReport()
        self.logger.info(f"Starting sync with strategy {strategy.value}")

        try:
            local_items = await self.local.get_all()
            remote_items = await self._fetch_remote()

            pending = [item for item in local_items if item.has_pending_changes]
            if not pending and not remote_items:
                self.logger.info("Nothing to sync")
                return report.complete(SyncResult.NO_CHANGES)

            wrote_remote, deferred = await self._upload(pending, report)
            if wrote_remote:
                remote_items = await self._fetch_remote()

            await self._download(remote_items, strategy, report, deferred)
            purged = await self.local.purge(is_purgeable)
            if purged:
                self.logger.debug(f"Purged {purged} propagated tombstones")
        except FetchError as e:
            self.logger.error(f"Sync aborted: {e}")
            return report.fail(str(e))

        report.complete()
        self.logger.info(f"Sync finished: {report.summary()}")
        return report

    async def _fetch_remote(self) -> List[TodoItem]:
        try:
            return await self.api.list_todos()
        except TransportError as e:
            raise FetchError(f"Failed to fetch remote todos: {e}") from e

    def _record_failure(self, report: SyncReport, item: TodoItem, error: TransportError) -> None:
        report.failed_uploads += 1
        report.add_error(f"{item.id}: {error}")
        self.logger.warning(f"Failed to upload todo {item.id}: {error}")

    async def _upload(self, pending: List[TodoItem],
                      report: SyncReport) -> Tuple[bool, Set[str]]:
        """Push pending local changes one record at a time.

        Returns:
            Whether any remote write happened, and the local ids of records
            that were created remotely but still carry unpushed changes
        """
        changes: List[Change] = []
        deferred: Set[str] = set()
        wrote_remote = False
        for item in pending:
            try:
                synced = await self._upload_one(item)
            except PartialWriteError as e:
                # Keep the server id so the next pass updates instead of creating again.
                changes.append((item, item.with_changes(server_id=e.server_id)))
                deferred.add(item.id)
                wrote_remote = True
                self._record_failure(report, item, e)
                continue
            except TransportError as e:
                self._record_failure(report, item, e)
                continue
            changes.append((item, synced))
            if item.has_server_version or not item.is_deleted:
                report.local_changes_uploaded += 1
                wrote_remote = True

        if changes:
            await self.local.commit(changes)
        return wrote_remote, deferred

    async def _upload_one(self, item: TodoItem) -> TodoItem:
        if item.is_deleted:
            if item.has_server_version:
                try:
                    await self.api.delete_todo(item.server_id)
                except RemoteNotFoundError:
                    self.logger.debug(f"Todo {item.server_id} already gone remotely")
            return item.mark_synced()

        if item.is_local:
            created = await self._create_remote(item)
            return item.mark_synced(server_id=created.server_id, at=created.last_modified)

        updated = await self.api.update_todo(item)
        return item.mark_synced(at=updated.last_modified)

    async def _create_remote(self, item: TodoItem) -> TodoItem:
        """Create ``item`` on the server, then push its completion state.

        Raises:
            PartialWriteError: If the record was created but the update failed
        """
        created = await self.api.create_todo(item.title, item.priority, item.due_date)
        if not item.is_completed:
            return created
        # Creation does not carry completion state.
        try:
            return await self.api.update_todo(item.with_changes(server_id=created.server_id))
        except TransportError as e:
            raise PartialWriteError(created.server_id, e) from e

    async def _download(self, remote_items: List[TodoItem], strategy: ConflictStrategy,
                        report: SyncReport, deferred: Optional[Set[str]] = None) -> None:
        deferred = deferred or set()
        local_items = await self.local.get_all()
        by_server_id = {item.server_id: item for item in local_items if item.has_server_version}

        changes: List[Change] = []
        for remote in remote_items:
            local = by_server_id.get(remote.server_id)

            if local is None:
                changes.append((None, remote))
                by_server_id[remote.server_id] = remote
                report.server_changes_downloaded += 1
            elif local.is_deleted:
                # Pending or propagated deletion; never resurrect.
                continue
            elif local.id in deferred:
                continue
            elif local.is_synced:
                if remote.modified_at > local.modified_at:
                    changes.append((local, local.adopt_remote(remote)))
                    report.server_changes_downloaded += 1
            else:
                resolved = self.conflict_resolver.resolve(local, remote, strategy)
                if resolved is None:
                    report.unresolved_conflicts.append(
                        SyncConflict(local, remote, "Edited locally and remotely")
                    )
                else:
                    changes.append((local, resolved))
                    report.conflicts_resolved += 1

        if changes:
            await self.local.commit(changes)

    async def full_download(self) -> SyncReport:
        """Replace the local list with the remote one.

        Local ids are kept for records that already have a server id.
        """
        self._begin()
        report = SyncReport()
        try:
            try:
                remote_items = await self._fetch_remote()
            except FetchError as e:
                return report.fail(str(e))

            local_ids = {
                item.server_id: item for item in await self.local.get_all() if item.has_server_version
            }
            replacement = []
            for remote in remote_items:
                existing = local_ids.get(remote.server_id)
                replacement.append(existing.adopt_remote(remote) if existing else remote)

            await self.local.replace(replacement)
            report.server_changes_downloaded = len(replacement)
            self.logger.info(f"Full download stored {len(replacement)} todos")
            return report.complete(SyncResult.SUCCESS)
        finally:
            self._running = False

    async def full_upload(self) -> SyncReport:
        """Push every visible local record regardless of its sync flag."""
        self._begin()
        report = SyncReport()
        try:
            changes: List[Change] = []
            for item in await self.local.get_todos():
                try:
                    if item.has_server_version:
                        remote = await self.api.update_todo(item)
                    else:
                        remote = await self._create_remote(item)
                except PartialWriteError as e:
                    pending_item = item.with_changes(server_id=e.server_id, is_synced=False)
                    changes.append((item, pending_item))
                    self._record_failure(report, item, e)
                    continue
                except TransportError as e:
                    self._record_failure(report, item, e)
                    continue
                changes.append((item, item.mark_synced(server_id=remote.server_id,
                                                       at=remote.last_modified)))
                report.local_changes_uploaded += 1

            if changes:
                await self.local.commit(changes)
            self.logger.info(f"Full upload pushed {report.local_changes_uploaded} todos")
            return report.complete(SyncResult.SUCCESS)
        finally:
            self._running = False
