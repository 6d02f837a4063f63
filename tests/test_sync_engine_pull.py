"""Tests for SyncEngine pull, remote deletions and full sync passes."""

import pytest

from flashcard_github_sync.domain.entities.card import (
    CardEntity,
    FsrsParams,
    SchedulingState,
    Sm2Params,
)
from flashcard_github_sync.sync.engine import PullAction, PushStatus, SyncStatus
from flashcard_github_sync.sync.serializer import serialize_card
from tests.fixtures import T0, T1, T2


def artifact(card_id: str, back: str, updated_at, **kwargs) -> str:
    return serialize_card(
        CardEntity(card_id=card_id, front="Q", back=back, updated_at=updated_at, **kwargs)
    )


async def seed_entry(engine, remote, card_id: str, back: str = "A") -> str:
    """Map a card to a file as if synced at T0; returns the path."""
    path = f"cards/{card_id}.md"
    sha = remote.put(path, artifact(card_id, back, T0))
    await engine.start()
    await engine.identity_map.upsert(card_id, path, sha, synced_at=T0)
    return path


class TestPullNewFiles:
    """Files without a local card create one."""

    @pytest.mark.asyncio
    async def test_unknown_file_creates_card(self, engine, host, remote):
        scheduling = SchedulingState(
            params=FsrsParams(difficulty=5.6, stability=15.2),
            last_reviewed_at=T0,
            next_due_at=T2,
        )
        sha = remote.put(
            "cards/c9.md",
            artifact("c9", "Rayleigh scattering", T1, tags=frozenset({"Astronomy"}), scheduling=scheduling),
        )

        report = await engine.pull()

        assert [(o.action, o.card_id) for o in report.outcomes] == [(PullAction.CREATED, "c9")]
        assert host.text("c9") == ("Q", "Rayleigh scattering")
        card = host.cards["c9"]
        assert card.tags == ["Astronomy"]
        assert card.scheduling == scheduling
        assert card.updated_at == T1
        assert engine.identity_map.lookup_by_local_id("c9").version_token == sha
        assert report.ok
        assert await engine.read_status() is SyncStatus.SYNCED

        pushed = await engine.push_card("c9")

        assert pushed.status is PushStatus.UNCHANGED

    @pytest.mark.asyncio
    async def test_parent_id_applied_and_kept_on_push(self, engine, host, remote):
        text = artifact("c9", "There", T1, parent_id="rem-7")
        sha = remote.put("cards/c9.md", text)

        report = await engine.pull()
        pushed = await engine.push_card("c9")

        assert report.outcomes[0].action is PullAction.CREATED
        assert host.cards["c9"].parent_id == "rem-7"
        assert pushed.status is PushStatus.UNCHANGED
        assert remote.text("cards/c9.md") == text
        assert remote.sha("cards/c9.md") == sha
        assert remote.writes("cards/c9.md") == []

    @pytest.mark.asyncio
    async def test_remote_parent_change_is_applied(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0, parent_id="rem-1")
        await engine.push_card("c1")
        remote.put("cards/c1.md", artifact("c1", "A", T1, parent_id="rem-2"))

        report = await engine.pull()

        assert report.outcomes[0].action is PullAction.UPDATED
        assert host.cards["c1"].parent_id == "rem-2"
        assert (await engine.push_card("c1")).status is PushStatus.UNCHANGED

    @pytest.mark.asyncio
    async def test_id_from_slug_file_name(self, engine, host, remote):
        remote.put(
            "cards/hello-there__c7.md",
            "---\ntags: []\n---\n**Q:** Hello\n\n**A:** There\n",
        )

        report = await engine.pull()

        assert report.outcomes[0].card_id == "c7"
        assert host.text("c7") == ("Hello", "There")
        assert host.cards["c7"].scheduling == SchedulingState(params=Sm2Params())
        assert engine.identity_map.lookup_by_local_id("c7").slug == "hello-there"

    @pytest.mark.asyncio
    async def test_non_card_entries_are_ignored(self, engine, host, remote):
        remote.put("cards/README.txt", "notes")
        remote.put("cards/media/abc.png", b"\x89PNG")
        remote.put("cards/conflicts/c1-20250410T000000000000Z.md", "record")

        report = await engine.pull()

        assert report.outcomes == []
        assert host.cards == {}

    @pytest.mark.asyncio
    async def test_empty_repository_is_not_an_error(self, engine):
        report = await engine.pull()

        assert report.ok
        assert report.outcomes == []


class TestPullUpdates:
    """Files that changed remotely since the last sync."""

    @pytest.mark.asyncio
    async def test_unchanged_sha_skips_read(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")
        remote.calls.clear()

        report = await engine.pull()

        assert report.outcomes[0].action is PullAction.UNCHANGED
        assert ("read", "cards/c1.md") not in remote.calls

    @pytest.mark.asyncio
    async def test_remote_edit_applies_to_unchanged_local(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T1)
        await engine.push_card("c1")
        # Remote edit carries an older clock; local is untouched so it still wins
        remote.put("cards/c1.md", artifact("c1", "B", T0))

        report = await engine.pull()

        assert report.outcomes[0].action is PullAction.UPDATED
        assert host.text("c1") == ("Q", "B")
        assert engine.identity_map.lookup_by_local_id("c1").version_token == remote.sha("cards/c1.md")

    @pytest.mark.asyncio
    async def test_both_edited_newer_local_is_kept(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        pushed = await engine.push_card("c1")
        host.add("c1", "Q", "Local", updated_at=T2)
        remote.put("cards/c1.md", artifact("c1", "Remote", T1))

        report = await engine.pull()

        assert report.outcomes[0].action is PullAction.KEPT_LOCAL
        assert host.text("c1") == ("Q", "Local")
        assert engine.identity_map.lookup_by_local_id("c1").version_token == pushed.sha

    @pytest.mark.asyncio
    async def test_both_edited_newer_remote_wins(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")
        host.add("c1", "Q", "Local", updated_at=T1)
        remote.put("cards/c1.md", artifact("c1", "Remote", T2))

        report = await engine.pull()

        assert report.outcomes[0].action is PullAction.UPDATED
        assert host.text("c1") == ("Q", "Remote")

    @pytest.mark.asyncio
    async def test_tie_records_conflict(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")
        host.add("c1", "Q", "Local", updated_at=T1)
        remote.put("cards/c1.md", artifact("c1", "Remote", T1))

        report = await engine.pull()

        outcome = report.outcomes[0]
        assert outcome.action is PullAction.CONFLICT
        assert outcome.record_path in remote.files
        assert host.text("c1") == ("Q", "Local")
        assert report.conflicts == 1

    @pytest.mark.asyncio
    async def test_persisting_tie_is_recorded_once(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")
        host.add("c1", "Q", "Local", updated_at=T1)
        remote_sha = remote.put("cards/c1.md", artifact("c1", "Remote", T1))

        actions = [(await engine.pull()).outcomes[0].action for _ in range(3)]
        pushes = [await engine.push_card("c1") for _ in range(2)]

        records = [path for path in remote.files if path.startswith("cards/conflicts/")]
        assert actions == [PullAction.CONFLICT] * 3
        assert [o.status for o in pushes] == [PushStatus.CONFLICT] * 2
        assert records == [f"cards/conflicts/c1-{remote_sha[:12]}.md"]
        assert {o.record_path for o in pushes} == set(records)

    @pytest.mark.asyncio
    async def test_new_remote_version_gets_its_own_record(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")
        host.add("c1", "Q", "Local", updated_at=T1)
        remote.put("cards/c1.md", artifact("c1", "Remote", T1))
        first = (await engine.pull()).outcomes[0].record_path
        remote.put("cards/c1.md", artifact("c1", "Remote again", T1))

        second = (await engine.pull()).outcomes[0].record_path

        assert first != second
        assert "Remote again" in remote.text(second)
        assert "Remote again" not in remote.text(first)

    @pytest.mark.asyncio
    async def test_malformed_file_is_skipped(self, engine, host, remote):
        remote.put("cards/bad.md", "no frontmatter here")
        remote.put("cards/c2.md", artifact("c2", "fine", T0))

        report = await engine.pull()

        actions = {o.path: o.action for o in report.outcomes}
        assert actions == {
            "cards/bad.md": PullAction.MALFORMED,
            "cards/c2.md": PullAction.CREATED,
        }
        assert "bad" not in host.cards
        assert report.ok

    @pytest.mark.asyncio
    async def test_read_failure_marks_pass_failed(self, engine, host, remote):
        remote.put("cards/c2.md", artifact("c2", "fine", T0))
        remote.fail("read", "cards/c2.md")

        report = await engine.pull()

        assert report.outcomes[0].action is PullAction.FAILED
        assert not report.ok
        assert await engine.read_status() is SyncStatus.ERROR

    @pytest.mark.asyncio
    async def test_listing_failure_touches_nothing(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await seed_entry(engine, remote, "c1")
        remote.fail("list")

        report = await engine.pull()

        assert report.error
        assert not report.ok
        assert "c1" in engine.identity_map
        assert report.removed == {}


class TestRemoteDeletion:
    """Identity entries whose file is gone from the listing."""

    @pytest.mark.asyncio
    async def test_unconfirmed_deletion_keeps_card_and_drops_entry(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]

        report = await engine.pull()

        assert report.removed == {"c1": "kept"}
        assert "c1" in host.cards
        assert "Archived" not in host.cards["c1"].tags
        assert "c1" not in engine.identity_map

    @pytest.mark.asyncio
    async def test_kept_card_stays_gone_across_passes(self, engine, host, remote, kv_store):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")
        del remote.files["cards/c1.md"]

        first = await engine.sync_now()
        second = await engine.sync_now()

        assert first.pull.removed == {"c1": "kept"}
        assert [(o.card_id, o.status) for o in second.pushes] == [("c1", PushStatus.SKIPPED)]
        assert remote.files == {}
        assert "c1" in host.cards
        assert "c1" in kv_store.value("github-removed-cards")

    @pytest.mark.asyncio
    async def test_kept_card_stays_gone_after_restart(self, make_engine, host, remote):
        engine = make_engine()
        host.add("c1", "Q", "A", updated_at=T0)
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]
        await engine.pull()
        await engine.stop()

        outcome = await make_engine().push_card("c1")

        assert outcome.status is PushStatus.SKIPPED
        assert remote.writes() == []

    @pytest.mark.asyncio
    async def test_local_edit_after_deletion_pushes_again(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]
        await engine.pull()
        host.add("c1", "Q", "Edited", updated_at=T2)

        outcome = await engine.push_card("c1")

        assert outcome.status is PushStatus.PUSHED
        assert "Edited" in remote.text(outcome.path)
        assert "c1" not in engine.tombstones

    @pytest.mark.asyncio
    async def test_file_restored_remotely_lifts_tombstone(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        pushed = await engine.push_card("c1")
        text = remote.text(pushed.path)
        del remote.files[pushed.path]
        await engine.pull()
        remote.put(pushed.path, text)

        report = await engine.pull()

        assert report.outcomes[0].action is PullAction.UNCHANGED
        assert "c1" not in engine.tombstones
        assert engine.identity_map.lookup_by_local_id("c1").remote_path == pushed.path

    @pytest.mark.asyncio
    async def test_confirmed_deletion_archives(self, make_engine, host, remote):
        asked = []

        async def confirm(card_id):
            asked.append(card_id)
            return True

        engine = make_engine(confirm_delete=confirm)
        host.add("c1", "Q", "A", tags=["keep"], updated_at=T0)
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]

        report = await engine.pull()

        assert asked == ["c1"]
        assert report.removed == {"c1": "archived"}
        assert sorted(host.cards["c1"].tags) == ["Archived", "keep"]
        assert "c1" not in engine.identity_map

        outcome = await engine.push_card("c1")

        assert outcome.status is PushStatus.SKIPPED
        assert path not in remote.files

    @pytest.mark.asyncio
    async def test_delete_mode_removes_card(self, make_engine, host, remote):
        engine = make_engine(delete_mode="delete", confirm_remote_deletes=True)
        host.add("c1", "Q", "A", updated_at=T0)
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]

        report = await engine.pull()

        assert report.removed == {"c1": "deleted"}
        assert "c1" not in host.cards

    @pytest.mark.asyncio
    async def test_failing_confirmer_counts_as_no(self, make_engine, host, remote):
        async def confirm(card_id):
            raise RuntimeError("dialog closed")

        engine = make_engine(confirm_delete=confirm)
        host.add("c1", "Q", "A", updated_at=T0)
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]

        report = await engine.pull()

        assert report.removed == {"c1": "kept"}
        assert "c1" in host.cards

    @pytest.mark.asyncio
    async def test_card_already_gone_locally(self, engine, host, remote):
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]
        await engine.retry_queue.add("c1")

        report = await engine.pull()

        assert report.removed == {"c1": "missing"}
        assert "c1" not in engine.retry_queue


class TestDeleteCardFile:
    """Local deletions propagated to the repository."""

    @pytest.mark.asyncio
    async def test_deletes_file_and_entry(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")

        assert await engine.delete_card_file("c1") is True
        assert "cards/c1.md" not in remote.files
        assert "c1" not in engine.identity_map

    @pytest.mark.asyncio
    async def test_unknown_card(self, engine, remote):
        assert await engine.delete_card_file("nope") is False
        assert remote.calls == []

    @pytest.mark.asyncio
    async def test_failure_keeps_entry(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        await engine.push_card("c1")
        remote.fail("delete")

        assert await engine.delete_card_file("c1") is False
        assert "c1" in engine.identity_map


class TestSyncNow:
    """Full passes: pull, push all, drain retries."""

    @pytest.mark.asyncio
    async def test_full_pass(self, engine, host, remote):
        remote.put("cards/c9.md", artifact("c9", "from remote", T0))
        host.add("c1", "Q", "from local", updated_at=T1)

        report = await engine.sync_now()

        assert report.success
        assert report.pull.created == 1
        assert report.pushed == 1
        statuses = {o.card_id: o.status for o in report.pushes}
        assert statuses == {"c1": PushStatus.PUSHED, "c9": PushStatus.UNCHANGED}
        assert "cards/c1.md" in remote.files
        assert await engine.read_status() is SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_removed_cards_are_not_pushed_back(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        path = await seed_entry(engine, remote, "c1")
        del remote.files[path]

        report = await engine.sync_now()

        assert report.pull.removed == {"c1": "kept"}
        assert [o.card_id for o in report.pushes] == []
        assert path not in remote.files

    @pytest.mark.asyncio
    async def test_queued_cards_are_retried(self, engine, host, remote):
        host.add("c1", "Q", "A", updated_at=T0)
        remote.fail("write", "cards/c1.md")
        remote.fail("write", "cards/c1.md")

        report = await engine.sync_now()

        # push_all fails once, then the drain in the same pass fails again
        assert [o.status for o in report.retried] == [PushStatus.QUEUED]
        assert report.queued == 2
        assert not report.success
        assert await engine.read_status() is SyncStatus.ERROR

    @pytest.mark.asyncio
    async def test_configuration_error_is_reported(self, make_engine, remote):
        engine = make_engine(github_repo="")

        report = await engine.sync_now()

        assert not report.success
        assert "github_repo" in report.error
        assert remote.calls == []
        assert await engine.read_status() is SyncStatus.ERROR
