"""Tests for model, count and populate streams."""

import asyncio
import io
import json

import pytest

from merlin.errors import StreamConsumedError
from merlin.model_set import ModelSet
from merlin.streams import CountStream, PopulateStream
from merlin.relations import resolutions


async def _numbers(*values):
    for value in values:
        yield value


@pytest.fixture
def library(memory_merlin):
    """Author <- many Books; Book -> one Publisher."""
    author = memory_merlin.model("Author", True)
    book = memory_merlin.model("Book", True)
    publisher = memory_merlin.model("Publisher", True)
    book.many_have_one("Author")
    book.has_one("Publisher")
    return author, book, publisher


# =============================================================================
# ModelStream
# =============================================================================


class TestModelStream:
    @pytest.fixture
    def people(self, memory_merlin):
        return memory_merlin.model("Person", True)

    @pytest.mark.asyncio
    async def test_async_iteration_preserves_order(self, people):
        await people.insert([{"n": 1}, {"n": 2}, {"n": 3}])
        seen = [p.n async for p in people.find()]
        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_at_and_last(self, people):
        await people.insert([{"n": 1}, {"n": 2}, {"n": 3}])
        assert (await people.find().at(1)).n == 2
        assert await people.find().at(10) is None
        assert (await people.find().last()).n == 3
        with pytest.raises(ValueError):
            await people.find().at(-1)

    @pytest.mark.asyncio
    async def test_for_each_awaits_handlers(self, people):
        await people.insert([{"n": 1}, {"n": 2}])
        seen = []

        async def handler(person):
            await asyncio.sleep(0)
            seen.append(person.n)

        assert await people.find().for_each(handler) == 2
        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_for_each_handler_error_propagates(self, people):
        await people.insert([{"n": 1}, {"n": 2}])
        seen = []

        def handler(person):
            seen.append(person.n)
            raise RuntimeError("stop")

        with pytest.raises(RuntimeError):
            await people.find().for_each(handler)
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_pipe_json(self, people):
        await people.insert([{"n": 1}, {"n": 2}])
        out = io.StringIO()
        assert await people.find().pipe_json(out) == 2
        assert [r["n"] for r in json.loads(out.getvalue())] == [1, 2]

    @pytest.mark.asyncio
    async def test_pipe_json_empty(self, people):
        out = io.StringIO()
        assert await people.find().pipe_json(out) == 0
        assert out.getvalue() == "[]"

    @pytest.mark.asyncio
    async def test_second_consumption_fails(self, people):
        stream = people.find()
        [p async for p in stream]
        with pytest.raises(StreamConsumedError):
            await stream
        assert stream.consumed is True

    @pytest.mark.asyncio
    async def test_early_stop_closes_driver_iterator(self, people):
        closed = []

        async def source(*args):
            try:
                for n in range(10):
                    yield {"n": n}
            finally:
                closed.append(True)

        people.merlin._driver.find = source
        assert (await people.find().first()).n == 0
        assert closed == [True]


# =============================================================================
# CountStream
# =============================================================================


class TestCountStream:
    @pytest.mark.asyncio
    async def test_sums_partial_counts(self):
        assert await CountStream(_numbers(2, 3, 5)).count() == 10

    @pytest.mark.asyncio
    async def test_awaiting_counts(self):
        assert await CountStream(_numbers(4)) == 4

    @pytest.mark.asyncio
    async def test_single_use(self):
        stream = CountStream(_numbers(1))
        await stream
        with pytest.raises(StreamConsumedError):
            await stream.count()


# =============================================================================
# PopulateStream
# =============================================================================


class TestPopulate:
    @pytest.mark.asyncio
    async def test_find_with_sub_query_populates_all_paths(self, library):
        author, book, publisher = library
        ada = await author.create({"name": "Ada"})
        press = await publisher.create({"name": "Press"})
        await book.insert([
            {"title": "A", "authorId": ada.id_value, "publisherId": press.id_value},
            {"title": "B", "authorId": ada.id_value},
            {"title": "C", "authorId": "nobody"},
        ])

        [found] = await author.find({"name": "Ada", "books": True})
        assert isinstance(found.books, ModelSet)
        assert sorted(b.title for b in found.books) == ["A", "B"]

        books = await book.find({"title": "A", "author": True})
        assert books[0].author.name == "Ada"
        assert books[0].publisher.name == "Press"

    @pytest.mark.asyncio
    async def test_sub_query_narrows_lookup(self, library):
        author, book, _ = library
        ada = await author.create({"name": "Ada"})
        await book.insert([
            {"title": "A", "authorId": ada.id_value},
            {"title": "B", "authorId": ada.id_value},
        ])
        found = await author.find_one({"books": {"title": "B"}})
        assert [b.title for b in found.books] == ["B"]

    @pytest.mark.asyncio
    async def test_missing_keys_attach_empty_values(self, library):
        author, book, _ = library
        await book.create({"title": "Orphan"})
        orphan = await book.find_one({"author": True})
        assert orphan.author is None
        assert orphan.publisher is None

    @pytest.mark.asyncio
    async def test_raw_mode_attaches_plain_data(self, library):
        author, book, _ = library
        ada = await author.create({"name": "Ada"})
        await book.create({"title": "A", "authorId": ada.id_value})
        [raw] = await author.find({"books": True}, raw_mode=True)
        assert raw["books"] == [{"title": "A", "authorId": ada.id_value, "id": raw["books"][0]["id"]}]

    @pytest.mark.asyncio
    async def test_auto_populate_disabled(self, library, memory_merlin):
        author, book, _ = library
        memory_merlin.config = memory_merlin.config.replace(auto_populate_by_query=False)
        ada = await author.create({"name": "Ada"})
        await book.create({"title": "A", "authorId": ada.id_value})
        found = await author.find_one({"books": True})
        assert not hasattr(found, "books")

    @pytest.mark.asyncio
    async def test_failed_lookup_cancels_siblings(self, library):
        author, book, publisher = library
        started = asyncio.Event()
        cancelled = []

        async def slow(*args, **kwargs):
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            yield {}

        def fail(*args, **kwargs):
            async def records():
                await started.wait()
                raise RuntimeError("author lookup failed")
                yield {}

            return records()

        await book.create({"title": "A", "authorId": "a1", "publisherId": "p1"})
        driver = book.merlin.driver
        original_find = driver.find

        def find(collection, opts, query):
            if collection == "authors":
                return fail()
            if collection == "publishers":
                return slow()
            return original_find(collection, opts, query)

        driver.find = find

        with pytest.raises(RuntimeError, match="author lookup failed"):
            await book.find({"author": True})
        assert cancelled == [True]

    @pytest.mark.asyncio
    async def test_populate_stream_without_relations_passes_through(self, memory_merlin):
        plain = memory_merlin.model("Plain", True)
        assert resolutions(plain) == []
        stream = PopulateStream(plain, _numbers({"a": 1}, {"a": 2}))
        assert [r async for r in stream] == [{"a": 1}, {"a": 2}]
