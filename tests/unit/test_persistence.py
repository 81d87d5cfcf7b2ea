"""Unit tests for order repositories (SQL, JSON file and in-memory)."""
import json
import pytest

from conftest import DELIVERY_DETAILS, delivery_line
from pharmfind.services.ordering.errors import ConcurrentUpdateError
from pharmfind.services.ordering.ledger import OrderLedger
from pharmfind.services.ordering.stages import OrderStatus
from pharmfind.services.persistence.in_memory import InMemoryOrderRepository
from pharmfind.services.persistence.json_file import JsonFileOrderRepository
from pharmfind.services.persistence.orders import SqlOrderRepository
from pharmfind.services.review.queue import ReviewQueue


class TestSqlOrderRepository:
    """Test the relational order repository."""

    @pytest.mark.asyncio
    async def test_create_and_get_order(self, test_db, catalog, clock):
        """Orders round-trip through the payload column."""
        ledger = OrderLedger(SqlOrderRepository(test_db), catalog, clock=clock)

        order = await ledger.create_order([delivery_line(quantity=2)], DELIVERY_DETAILS)
        retrieved = await ledger.get_order(order.order_id)

        assert retrieved.order_id == order.order_id
        assert retrieved.status == OrderStatus.PENDING
        assert retrieved.pricing.total == 18.0
        assert retrieved.items[0].medicine_name == "Panadol Extra"
        assert retrieved.created_at == order.created_at

    @pytest.mark.asyncio
    async def test_get_missing_order(self, test_db):
        repository = SqlOrderRepository(test_db)

        assert await repository.get("ORD-MISSING") is None

    @pytest.mark.asyncio
    async def test_status_update_persists_version(self, test_db, catalog, clock):
        repository = SqlOrderRepository(test_db)
        ledger = OrderLedger(repository, catalog, clock=clock)
        order = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)

        await ReviewQueue(ledger).accept(order.order_id)
        retrieved = await repository.get(order.order_id)

        assert retrieved.status == OrderStatus.CONFIRMED
        assert retrieved.version == 1
        assert retrieved.delivery is not None

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, test_db, catalog, clock):
        """The conditional update only matches the version that was read."""
        repository = SqlOrderRepository(test_db)
        ledger = OrderLedger(repository, catalog, clock=clock)
        order = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)
        stale = await repository.get(order.order_id)

        await ledger.append_status(order.order_id, OrderStatus.REVIEWING)
        ledger.apply_note(stale, "late write")

        with pytest.raises(ConcurrentUpdateError):
            await ledger.save(stale, 0)
        retrieved = await repository.get(order.order_id)
        assert retrieved.status == OrderStatus.REVIEWING
        assert retrieved.version == 1

    @pytest.mark.asyncio
    async def test_list_where_newest_first(self, test_db, catalog, clock):
        repository = SqlOrderRepository(test_db)
        ledger = OrderLedger(repository, catalog, clock=clock)
        first = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)
        clock.advance(minutes=10)
        second = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)
        await ledger.append_status(first.order_id, OrderStatus.REVIEWING)

        everything = await repository.list_where(lambda o: True)
        reviewing = await repository.list_where(lambda o: o.status == OrderStatus.REVIEWING)

        assert [o.order_id for o in everything] == [second.order_id, first.order_id]
        assert [o.order_id for o in reviewing] == [first.order_id]


class TestJsonFileOrderRepository:
    """Test the JSON file order repository."""

    @pytest.mark.asyncio
    async def test_orders_survive_reload(self, tmp_path, catalog, clock):
        path = tmp_path / "orders.json"
        ledger = OrderLedger(JsonFileOrderRepository(str(path)), catalog, clock=clock)
        order = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)
        await ledger.append_status(order.order_id, OrderStatus.REVIEWING)

        reloaded = JsonFileOrderRepository(str(path))
        retrieved = await reloaded.get(order.order_id)

        assert retrieved.status == OrderStatus.REVIEWING
        assert retrieved.version == 1
        with open(path) as f:
            assert [o["order_id"] for o in json.load(f)["orders"]] == [order.order_id]

    @pytest.mark.asyncio
    async def test_compare_and_swap(self, tmp_path, catalog, clock):
        repository = JsonFileOrderRepository(str(tmp_path / "orders.json"))
        ledger = OrderLedger(repository, catalog, clock=clock)
        order = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)

        current = await repository.get(order.order_id)
        current.version = 1
        assert await repository.compare_and_swap(current, 0) is True
        assert await repository.compare_and_swap(current, 0) is False

    @pytest.mark.asyncio
    async def test_failed_write_leaves_order_unchanged(self, tmp_path, catalog, clock, monkeypatch):
        """A write that cannot reach disk is not visible to later reads."""
        path = tmp_path / "orders.json"
        repository = JsonFileOrderRepository(str(path))
        ledger = OrderLedger(repository, catalog, clock=clock)
        order = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)

        def disk_full(orders):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(repository, "_flush", disk_full)
        with pytest.raises(OSError):
            await ledger.append_status(order.order_id, OrderStatus.REVIEWING)
        with pytest.raises(OSError):
            await ledger.create_order([delivery_line()], DELIVERY_DETAILS)

        stored = await repository.get(order.order_id)
        assert stored.status == OrderStatus.PENDING
        assert stored.version == 0
        assert [o.order_id for o in await repository.list_where(lambda o: True)] == [
            order.order_id
        ]
        assert (await JsonFileOrderRepository(str(path)).get(order.order_id)).version == 0

    @pytest.mark.asyncio
    async def test_missing_file_starts_empty(self, tmp_path):
        repository = JsonFileOrderRepository(str(tmp_path / "nothing" / "orders.json"))

        assert await repository.list_where(lambda o: True) == []


class TestInMemoryOrderRepository:
    """Test the in-memory order repository."""

    @pytest.mark.asyncio
    async def test_returned_orders_are_copies(self, catalog, clock):
        """Mutating a returned order does not change the stored one."""
        repository = InMemoryOrderRepository()
        ledger = OrderLedger(repository, catalog, clock=clock)
        order = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)

        copy = await repository.get(order.order_id)
        copy.status = OrderStatus.REJECTED

        stored = await repository.get(order.order_id)
        assert stored.status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_compare_and_swap_missing_order(self, catalog, clock):
        repository = InMemoryOrderRepository()
        ledger = OrderLedger(repository, catalog, clock=clock)
        order = await ledger.create_order([delivery_line()], DELIVERY_DETAILS)
        order.order_id = "ORD-UNKNOWN"

        assert await repository.compare_and_swap(order, 0) is False
