import pytest
from couchbase.exceptions import CasMismatchException

from couchbase_connector.base.exceptions import (ObjectNotFoundException,
                                                 UpstreamFailureException)


async def test_update_upserts_missing_document(connector):
    assert await connector.update("User", {"id": "u1"}, {"id": "u1", "name": "New"}) is True
    assert await connector.all("User", "u1") == {"id": "u1", "name": "New"}


async def test_update_replaces_existing_document(connector):
    await connector.create("User", {"id": "u1", "name": "Ann", "age": 30})
    await connector.update("User", {"where": {"id": "u1"}}, {"id": "u1", "name": "Bea"})
    assert await connector.all("User", "u1") == {"id": "u1", "name": "Bea"}


async def test_save_requires_id(connector):
    with pytest.raises(ValueError):
        await connector.save("User", {"name": "anonymous"})


async def test_save_writes_document(connector):
    saved = await connector.save("User", {"id": "u1", "name": "Ann"})
    assert saved == {"id": "u1", "name": "Ann"}
    await connector.save("User", {"id": "u1", "name": "Bea"})
    assert await connector.find("User", "u1") == {"id": "u1", "name": "Bea"}


async def test_update_or_create(connector, store):
    created = await connector.update_or_create("User", {"name": "Ann"})
    assert created["id"]
    assert f"User::{created['id']}" in store.documents

    updated = await connector.update_or_create("User", {**created, "name": "Bea"})
    assert updated["id"] == created["id"]
    assert await connector.find("User", created["id"]) == updated
    assert len(store.documents) == 1


async def test_update_attributes_merges(connector, store):
    await connector.create("User", {"id": "u1", "name": "Ann", "age": 30})
    merged = await connector.update_attributes("User", "u1", {"age": 31, "city": "Oslo"})
    assert merged == {"id": "u1", "name": "Ann", "age": 31, "city": "Oslo"}
    assert await connector.find("User", "u1") == merged
    assert len(store.replace_options) == 1


async def test_update_attributes_missing_document(connector):
    with pytest.raises(ObjectNotFoundException):
        await connector.update_attributes("User", "ghost", {"age": 1})


async def test_update_attributes_on_non_object(connector):
    await connector.update("Counter", "c1", 5)
    with pytest.raises(ValueError):
        await connector.update_attributes("Counter", "c1", {"x": 1})


async def test_concurrent_write_during_update_attributes(connector, store):
    await connector.create("User", {"id": "u1", "name": "Ann"})
    original_get = store.get

    async def get_then_conflict(key, *options):
        result = await original_get(key, *options)
        store.fail_next = CasMismatchException()
        return result

    store.get = get_then_conflict
    with pytest.raises(UpstreamFailureException) as exc_info:
        await connector.update_attributes("User", "u1", {"name": "Bea"})
    assert isinstance(exc_info.value.cause, CasMismatchException)
    assert store.documents["User::u1"][0] == {"id": "u1", "name": "Ann"}
