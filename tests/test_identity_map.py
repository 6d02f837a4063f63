"""Tests for the persistent identity map."""

import pytest

from flashcard_github_sync.exceptions import StateError
from flashcard_github_sync.sync.identity_map import IDENTITY_MAP_KEY, IdentityMap
from tests.fixtures import T0, T1, InMemoryKeyValueStore


@pytest.mark.asyncio
async def test_upsert_writes_through(kv_store):
    identity_map = IdentityMap(kv_store)
    await identity_map.load()

    entry = await identity_map.upsert("c1", "cards/c1.md", "abc", synced_at=T0)

    assert identity_map.lookup_by_local_id("c1") == entry
    assert identity_map.lookup_by_path("cards/c1.md") == entry
    assert kv_store.value(IDENTITY_MAP_KEY) == {
        "c1": {
            "path": "cards/c1.md",
            "sha": "abc",
            "syncedAt": "2025-04-10T09:30:00Z",
            "slug": None,
            "parentId": None,
        }
    }


@pytest.mark.asyncio
async def test_load_round_trip(kv_store):
    first = IdentityMap(kv_store)
    await first.load()
    await first.upsert("c1", "cards/c1.md", "abc", synced_at=T0, slug="s", parent_id="p")

    second = IdentityMap(kv_store)
    await second.load()

    entry = second.lookup_by_local_id("c1")
    assert entry.version_token == "abc"
    assert entry.last_synced_at == T0
    assert entry.slug == "s"
    assert entry.parent_id == "p"
    assert second.loaded


@pytest.mark.asyncio
async def test_path_belongs_to_one_card(kv_store):
    identity_map = IdentityMap(kv_store)
    await identity_map.upsert("c1", "cards/x.md", "a")

    await identity_map.upsert("c2", "cards/x.md", "b")

    assert "c1" not in identity_map
    assert identity_map.lookup_by_path("cards/x.md").card_id == "c2"
    assert len(identity_map) == 1


@pytest.mark.asyncio
async def test_upsert_replaces_entry(kv_store):
    identity_map = IdentityMap(kv_store)
    await identity_map.upsert("c1", "cards/c1.md", "a", synced_at=T0)

    await identity_map.upsert("c1", "cards/c1.md", "b", synced_at=T1)

    assert identity_map.lookup_by_local_id("c1").version_token == "b"
    assert len(identity_map.all_entries()) == 1


@pytest.mark.asyncio
async def test_remove(kv_store):
    identity_map = IdentityMap(kv_store)
    await identity_map.upsert("c1", "cards/c1.md", "a")

    removed = await identity_map.remove("c1")

    assert removed.card_id == "c1"
    assert await identity_map.remove("c1") is None
    assert kv_store.value(IDENTITY_MAP_KEY) == {}


@pytest.mark.asyncio
async def test_empty_token_rejected(kv_store):
    identity_map = IdentityMap(kv_store)

    with pytest.raises(ValueError):
        await identity_map.upsert("c1", "cards/c1.md", "")


@pytest.mark.asyncio
async def test_bad_rows_are_dropped():
    store = InMemoryKeyValueStore(
        {
            IDENTITY_MAP_KEY: {
                "good": {"path": "cards/good.md", "sha": "a", "syncedAt": "2025-04-10T09:30:00Z"},
                "no-time": {"path": "cards/x.md", "sha": "b"},
                "no-sha": {"path": "cards/y.md", "syncedAt": "2025-04-10T09:30:00Z"},
                "not-a-dict": "cards/z.md",
            }
        }
    )
    identity_map = IdentityMap(store)

    await identity_map.load()

    assert [e.card_id for e in identity_map.all_entries()] == ["good"]


@pytest.mark.asyncio
async def test_non_mapping_state_raises():
    identity_map = IdentityMap(InMemoryKeyValueStore({IDENTITY_MAP_KEY: ["c1"]}))

    with pytest.raises(StateError):
        await identity_map.load()
