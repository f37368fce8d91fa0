"""Tests for the sync engine and conflict resolution."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from todo_sync.errors import SyncInProgressError
from todo_sync.sync.engine import ConflictResolver, SyncEngine
from todo_sync.sync.models import ConflictStrategy, SyncResult
from todo_sync.todo import TodoItem
from todo_sync.utils.datetime import now_utc


OLD = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def engine(fake_api, local_service):
    return SyncEngine(fake_api, local_service)


async def add_synced(local_service, title, server_id, at=OLD):
    """Create a local record that matches an existing server record."""
    item = await local_service.create(title)
    synced = item.with_changes(created_at=at).mark_synced(server_id=server_id, at=at)
    await local_service.commit([(item, synced)])
    return synced


async def add_conflict(local_service, fake_api, server_id, local_title, remote_title,
                       local_at, remote_at):
    """A record edited locally whose upload will fail, plus a remote edit."""
    fake_api.seed(remote_title, server_id=server_id, updated_at=remote_at)
    synced = await add_synced(local_service, "base", server_id)
    edited = synced.with_changes(title=local_title, is_synced=False, last_modified=local_at)
    await local_service.commit([(synced, edited)])
    fake_api.fail_updates.add(server_id)
    return edited


@pytest.mark.asyncio
class TestSyncPass:
    """Upload, download and cleanup phases."""

    async def test_nothing_to_do(self, engine, fake_api):
        report = await engine.sync()

        assert report.result == SyncResult.NO_CHANGES
        assert fake_api.calls == ["list"]

    async def test_uploads_local_record(self, engine, local_service, fake_api):
        item = await local_service.create("Buy milk")

        report = await engine.sync()

        stored = await local_service.get(item.id)
        assert report.result == SyncResult.SUCCESS
        assert report.local_changes_uploaded == 1
        assert stored.server_id in fake_api.records
        assert stored.is_synced is True

    async def test_downloads_unknown_remote_record(self, engine, local_service, fake_api):
        fake_api.seed("From phone", server_id="42")

        report = await engine.sync()

        items = await local_service.get_all()
        assert report.server_changes_downloaded == 1
        assert [item.server_id for item in items] == ["42"]
        assert items[0].is_synced is True

    async def test_merge_latest_keeps_newer_local_edit(self, engine, local_service, fake_api):
        edited = await add_conflict(local_service, fake_api, "42", "local title", "remote title",
                                    local_at=OLD + timedelta(days=2),
                                    remote_at=OLD + timedelta(days=1))

        report = await engine.sync()

        stored = await local_service.get(edited.id)
        assert report.conflicts_resolved == 1
        assert report.failed_uploads == 1
        assert report.unresolved_conflicts == []
        assert stored.title == "local title"
        assert stored.is_synced is True

    async def test_merge_latest_tie_goes_to_remote(self, engine, local_service, fake_api):
        stamp = OLD + timedelta(days=1)
        edited = await add_conflict(local_service, fake_api, "42", "local title", "remote title",
                                    local_at=stamp, remote_at=stamp)

        await engine.sync()

        stored = await local_service.get(edited.id)
        assert stored.title == "remote title"
        assert stored.id == edited.id

    async def test_remote_wins_strategy(self, engine, local_service, fake_api):
        edited = await add_conflict(local_service, fake_api, "42", "local title", "remote title",
                                    local_at=OLD + timedelta(days=5),
                                    remote_at=OLD + timedelta(days=1))

        report = await engine.sync(ConflictStrategy.REMOTE_WINS)

        assert report.conflicts_resolved == 1
        assert (await local_service.get(edited.id)).title == "remote title"

    async def test_local_wins_strategy(self, engine, local_service, fake_api):
        edited = await add_conflict(local_service, fake_api, "42", "local title", "remote title",
                                    local_at=OLD + timedelta(days=1),
                                    remote_at=OLD + timedelta(days=5))

        await engine.sync(ConflictStrategy.LOCAL_WINS)

        stored = await local_service.get(edited.id)
        assert stored.title == "local title"
        assert stored.is_synced is True

    async def test_second_pass_reports_no_changes(self, engine, local_service, fake_api):
        await local_service.create("Buy milk")
        fake_api.seed("From phone")
        await engine.sync()

        report = await engine.sync()

        assert report.result == SyncResult.NO_CHANGES
        assert len(await local_service.get_all()) == 2

    async def test_newer_remote_refreshes_synced_record(self, engine, local_service, fake_api):
        synced = await add_synced(local_service, "old", "42")
        fake_api.seed("renamed remotely", server_id="42", updated_at=OLD + timedelta(days=1))

        report = await engine.sync()

        stored = await local_service.get(synced.id)
        assert report.server_changes_downloaded == 1
        assert stored.title == "renamed remotely"

    async def test_completed_local_record_uploads_completion(self, engine, local_service, fake_api):
        item = await local_service.create("done offline")
        await local_service.toggle(item.id)

        await engine.sync()

        stored = await local_service.get(item.id)
        assert fake_api.records[stored.server_id]["is_completed"] is True
        assert fake_api.calls.count("create") == 1


@pytest.mark.asyncio
class TestTombstones:
    """Deletion propagation and cleanup."""

    async def test_delete_propagates_and_purges(self, engine, local_service, fake_api):
        fake_api.seed("shared", server_id="7", updated_at=OLD)
        synced = await add_synced(local_service, "shared", "7")
        await local_service.delete(synced.id)

        report = await engine.sync()

        assert report.local_changes_uploaded == 1
        assert "7" not in fake_api.records
        assert await local_service.get_all() == []

    async def test_delete_of_missing_remote_counts_as_success(self, engine, local_service, fake_api):
        synced = await add_synced(local_service, "gone", "7")
        await local_service.delete(synced.id)

        report = await engine.sync()

        assert report.failed_uploads == 0
        assert await local_service.get_all() == []

    async def test_failed_delete_keeps_tombstone_without_resurrection(self, engine, local_service,
                                                                      fake_api):
        fake_api.seed("shared", server_id="7", updated_at=OLD)
        synced = await add_synced(local_service, "shared", "7")
        await local_service.delete(synced.id)
        fake_api.fail_deletes.add("7")

        report = await engine.sync()

        items = await local_service.get_all()
        assert report.failed_uploads == 1
        assert len(items) == 1
        assert items[0].is_deleted is True
        assert items[0].is_synced is False
        assert await local_service.get_todos() == []


@pytest.mark.asyncio
class TestFailures:
    """Error handling inside a pass."""

    async def test_fetch_failure_aborts_before_mutation(self, engine, local_service, fake_api):
        item = await local_service.create("pending")
        fake_api.fail_list = True

        report = await engine.sync()

        assert report.result == SyncResult.ERROR
        assert report.error_message
        assert fake_api.calls == ["list"]
        assert await local_service.get(item.id) == item

    async def test_per_record_failure_does_not_abort_pass(self, engine, local_service, fake_api):
        await add_conflict(local_service, fake_api, "1", "edited", "remote",
                           local_at=OLD + timedelta(days=2), remote_at=OLD)
        fresh = await local_service.create("fresh")

        report = await engine.sync()

        assert report.failed_uploads == 1
        assert report.local_changes_uploaded == 1
        assert len(report.errors) == 1
        assert (await local_service.get(fresh.id)).is_synced is True

    async def test_failed_completion_update_keeps_created_server_id(self, engine, local_service,
                                                                     fake_api):
        item = await local_service.create("Buy milk")
        await local_service.toggle(item.id)
        fake_api.fail_all_updates = True

        first = await engine.sync()

        assert first.failed_uploads == 1
        stored = await local_service.get(item.id)
        assert stored.server_id in fake_api.records
        assert stored.is_synced is False
        assert stored.is_completed is True
        assert len(await local_service.get_all()) == 1

        fake_api.fail_all_updates = False
        second = await engine.sync()

        assert second.local_changes_uploaded == 1
        assert second.server_changes_downloaded == 0
        assert fake_api.calls.count("create") == 1
        assert len(fake_api.records) == 1
        assert fake_api.records[stored.server_id]["is_completed"] is True
        items = await local_service.get_all()
        assert [(todo.id, todo.is_synced) for todo in items] == [(item.id, True)]

    async def test_concurrent_pass_is_rejected(self, engine, local_service):
        await local_service.create("pending")

        results = await asyncio.gather(engine.sync(), engine.sync(), return_exceptions=True)

        assert isinstance(results[1], SyncInProgressError)
        assert results[0].result == SyncResult.SUCCESS
        assert engine.is_running is False


@pytest.mark.asyncio
class TestFullTransfers:
    """Full download and full upload."""

    async def test_full_download_replaces_local_list(self, engine, local_service, fake_api):
        synced = await add_synced(local_service, "stale", "1")
        await local_service.create("local only")
        fake_api.seed("fresh one", server_id="1")
        fake_api.seed("fresh two", server_id="2")

        report = await engine.full_download()

        items = {item.server_id: item for item in await local_service.get_all()}
        assert report.server_changes_downloaded == 2
        assert set(items) == {"1", "2"}
        assert items["1"].id == synced.id
        assert items["1"].title == "fresh one"

    async def test_full_download_fetch_failure(self, engine, local_service, fake_api):
        await local_service.create("kept")
        fake_api.fail_list = True

        report = await engine.full_download()

        assert report.result == SyncResult.ERROR
        assert len(await local_service.get_all()) == 1

    async def test_full_upload_pushes_every_visible_record(self, engine, local_service, fake_api):
        fake_api.seed("server copy", server_id="1", updated_at=OLD)
        await add_synced(local_service, "synced", "1")
        await local_service.create("local only")

        report = await engine.full_upload()

        assert report.local_changes_uploaded == 2
        assert len(fake_api.records) == 2
        assert all(item.is_synced for item in await local_service.get_all())

    async def test_full_upload_partial_create_keeps_server_id(self, engine, local_service,
                                                              fake_api):
        item = await local_service.create("done offline")
        await local_service.toggle(item.id)
        fake_api.fail_all_updates = True

        report = await engine.full_upload()

        assert report.failed_uploads == 1
        stored = await local_service.get(item.id)
        assert list(fake_api.records) == [stored.server_id]
        assert stored.is_synced is False


class TestConflictResolver:
    """Strategy selection in isolation."""

    def setup_method(self):
        self.resolver = ConflictResolver()
        self.local = TodoItem(id="l", title="local", server_id="1",
                              created_at=OLD, last_modified=OLD + timedelta(hours=2))
        self.remote = TodoItem(id="r", title="remote", server_id="1", is_synced=True,
                               created_at=OLD, last_modified=OLD + timedelta(hours=1))

    def test_merge_latest_prefers_newer(self):
        assert self.resolver.resolve(self.local, self.remote,
                                     ConflictStrategy.MERGE_LATEST).title == "local"
        newer_remote = self.remote.with_changes(last_modified=now_utc())
        resolved = self.resolver.resolve(self.local, newer_remote, ConflictStrategy.MERGE_LATEST)
        assert resolved.title == "remote"
        assert resolved.id == "l"

    def test_strategy_parse(self):
        assert ConflictStrategy.parse("remote-wins") == ConflictStrategy.REMOTE_WINS
        with pytest.raises(ValueError):
            ConflictStrategy.parse("coin_flip")
