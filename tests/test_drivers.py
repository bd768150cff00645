"""Tests for the reference drivers against the Driver protocol."""

import sqlite3

import pytest

from merlin.delta import Delta
from merlin.persistence import Driver, MemoryDriver, SQLiteDriver, create_driver
from merlin.persistence.sqlite import sqlite_path
from merlin.query import Query


async def _records(*records):
    for record in records:
        yield record


async def _collect(iterator):
    return [item async for item in iterator]


@pytest.fixture(params=["memory", "sqlite"])
def driver_factory(request, tmp_path):
    """Builds an unconnected driver of each kind."""

    def build():
        if request.param == "memory":
            return MemoryDriver(), None
        return SQLiteDriver(), f"sqlite:///{tmp_path / 'test.db'}"

    return build


# =============================================================================
# Protocol conformance
# =============================================================================


class TestProtocol:
    def test_reference_drivers_satisfy_protocol(self):
        assert isinstance(MemoryDriver(), Driver)
        assert isinstance(SQLiteDriver(), Driver)

    def test_create_driver_by_scheme(self, tmp_path):
        assert isinstance(create_driver("memory://"), MemoryDriver)
        driver = create_driver(f"sqlite:///{tmp_path / 'x.db'}", id_key="_id")
        assert isinstance(driver, SQLiteDriver)
        assert driver.id_key == "_id"
        with pytest.raises(ValueError):
            create_driver("postgresql://localhost/db")

    def test_sqlite_path(self):
        assert sqlite_path("sqlite:///data/app.db") == "data/app.db"
        assert sqlite_path("sqlite:///") == ":memory:"


# =============================================================================
# Behaviour shared by both drivers
# =============================================================================


class TestDriverBehaviour:
    @pytest.mark.asyncio
    async def test_insert_assigns_ids_and_find_returns_documents(self, driver_factory):
        driver, url = driver_factory()
        await driver.connect(url, {"idKey": "id"})
        inserted = await _collect(driver.insert("users", {})(_records({"name": "Ada"}, {"id": "b", "name": "Bob"})))
        assert inserted[0]["id"]
        assert inserted[1]["id"] == "b"

        found = await _collect(driver.find("users", {}, Query({"name": "Bob"})))
        assert found == [{"id": "b", "name": "Bob"}]
        await driver.disconnect()

    @pytest.mark.asyncio
    async def test_count_update_remove(self, driver_factory):
        driver, url = driver_factory()
        await driver.connect(url, {})
        await _collect(
            driver.insert("items", {})(_records({"id": "1", "n": 1}, {"id": "2", "n": 2}, {"id": "3", "n": 3}))
        )
        assert await _collect(driver.count("items", {}, Query({"n": {"$gte": 2}}))) == [2]

        updated = await _collect(
            driver.update("items", {}, Query({"n": {"$gte": 2}, "$limit": 1}), Delta({"$inc": {"n": 10}}))
        )
        assert updated == [1]
        values = sorted(d["n"] for d in await _collect(driver.find("items", {}, Query())))
        assert values == [1, 3, 12]

        removed = await _collect(driver.remove("items", {}, Query({"n": {"$lt": 5}})))
        assert removed == [2]
        assert await _collect(driver.find("items", {}, Query())) == [{"id": "2", "n": 12}]
        await driver.disconnect()

    @pytest.mark.asyncio
    async def test_find_applies_sort_skip_limit(self, driver_factory):
        driver, url = driver_factory()
        await driver.connect(url, {})
        await _collect(driver.insert("items", {})(_records({"n": 2}, {"n": 3}, {"n": 1})))
        found = await _collect(driver.find("items", {}, Query({"$sort": {"n": -1}, "$skip": 1, "$limit": 1})))
        assert [d["n"] for d in found] == [2]
        await driver.disconnect()

    @pytest.mark.asyncio
    async def test_documents_are_isolated_from_callers(self, driver_factory):
        driver, url = driver_factory()
        await driver.connect(url, {})
        record = {"id": "1", "tags": ["a"]}
        await _collect(driver.insert("items", {})(_records(record)))
        record["tags"].append("b")
        [found] = await _collect(driver.find("items", {}, Query()))
        found["tags"].append("c")
        [again] = await _collect(driver.find("items", {}, Query()))
        assert again["tags"] == ["a"]
        await driver.disconnect()

    @pytest.mark.asyncio
    async def test_custom_id_key(self, driver_factory):
        driver, url = driver_factory()
        await driver.connect(url, {"idKey": "_id"})
        [doc] = await _collect(driver.insert("items", {})(_records({"n": 1})))
        assert "_id" in doc and "id" not in doc
        await driver.disconnect()


# =============================================================================
# Driver specifics
# =============================================================================


class TestMemoryDriver:
    @pytest.mark.asyncio
    async def test_index_records_paths_once(self):
        driver = MemoryDriver()
        await driver.index("users", {}, "email")
        await driver.index("users", {}, "email")
        assert driver.indexes == {"users": ["email"]}


class TestSQLiteDriver:
    @pytest.mark.asyncio
    async def test_requires_connection(self):
        driver = SQLiteDriver()
        with pytest.raises(RuntimeError):
            await _collect(driver.find("users", {}, Query()))

    @pytest.mark.asyncio
    async def test_rejects_unsafe_collection_names(self):
        driver = SQLiteDriver()
        await driver.connect()
        with pytest.raises(ValueError):
            await _collect(driver.find('users"; DROP TABLE x; --', {}, Query()))
        await driver.disconnect()

    @pytest.mark.asyncio
    async def test_unique_index_is_enforced(self, tmp_path):
        driver = SQLiteDriver(tmp_path / "idx.db")
        await driver.connect()
        await driver.index("users", {"unique": True}, "email")
        await _collect(driver.insert("users", {})(_records({"email": "a@x.io"})))
        with pytest.raises(sqlite3.IntegrityError):
            await _collect(driver.insert("users", {})(_records({"email": "a@x.io"})))
        await driver.disconnect()

    @pytest.mark.asyncio
    async def test_data_survives_reconnect(self, tmp_path):
        path = tmp_path / "persist.db"
        driver = SQLiteDriver(path)
        await driver.connect()
        await _collect(driver.insert("users", {})(_records({"id": "u1", "name": "Ada"})))
        await driver.disconnect()

        reopened = SQLiteDriver(path)
        await reopened.connect()
        assert await _collect(reopened.find("users", {}, Query())) == [{"id": "u1", "name": "Ada"}]
        await reopened.disconnect()
