import pytest
from concurrent.futures import ThreadPoolExecutor

from sales_inventory.core.exceptions import ConcurrencyConflictError, InvalidTransitionError, NotFoundError
from sales_inventory.models.database import StockMovement, StockRecord
from sales_inventory.services.order_service import OrderService


@pytest.fixture
def split_stock(product, warehouses, make_stock):
    """Oldest record holds 4, newer one holds 10"""
    return make_stock(product, warehouses[0], 4), make_stock(product, warehouses[1], 10)


def _quantities(test_db, records):
    for record in records:
        test_db.refresh(record)
    return [record.quantity for record in records]


class TestTransitions:
    def test_forward_moves(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 1)])

        for status in ["Processing", "Shipped", "Delivered"]:
            order = service.update_order_status(order.id, status)
            assert order.status == status

    def test_skipping_ahead_is_allowed(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 1)])

        assert service.update_order_status(order.id, "Shipped").status == "Shipped"

    def test_backward_move_rejected(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 1)])
        service.update_order_status(order.id, "Shipped")

        with pytest.raises(InvalidTransitionError):
            service.update_order_status(order.id, "Pending")
        assert service.get_order(order.id).status == "Shipped"

    def test_unknown_status_rejected(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 1)])

        with pytest.raises(InvalidTransitionError, match="Lost"):
            service.update_order_status(order.id, "Lost")

    def test_cancelled_is_terminal(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 1)])
        service.update_order_status(order.id, "Cancelled")

        with pytest.raises(InvalidTransitionError):
            service.update_order_status(order.id, "Processing")

    def test_same_status_is_noop(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 1)])

        assert service.update_order_status(order.id, "Pending").status == "Pending"

    def test_missing_order(self, test_db):
        with pytest.raises(NotFoundError):
            OrderService(test_db).update_order_status(404, "Cancelled")


class TestCancellationRestitution:
    def test_exact_policy_reverses_allocations(self, test_db, customer, product, split_stock):
        service = OrderService(test_db, restitution_policy="exact")
        order = service.create_order(customer.id, "Cash", [(product.id, 6)])
        assert _quantities(test_db, split_stock) == [0, 8]

        order = service.update_order_status(order.id, "Cancelled")

        assert order.status == "Cancelled"
        assert _quantities(test_db, split_stock) == [4, 10]

    def test_earliest_policy_credits_oldest_record(self, test_db, customer, product, split_stock):
        service = OrderService(test_db, restitution_policy="earliest")
        order = service.create_order(customer.id, "Cash", [(product.id, 6)])

        service.update_order_status(order.id, "Cancelled")

        assert _quantities(test_db, split_stock) == [6, 8]

    def test_cancelling_twice_credits_once(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 6)])

        service.update_order_status(order.id, "Cancelled")
        service.update_order_status(order.id, "Cancelled")

        assert _quantities(test_db, split_stock) == [4, 10]
        assert test_db.query(StockMovement).filter(StockMovement.movement_type == "restitution").count() == 2

    def test_cancel_after_shipping(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 3)])
        service.update_order_status(order.id, "Shipped")

        service.update_order_status(order.id, "Cancelled")

        assert _quantities(test_db, split_stock) == [4, 10]

    def test_deleted_record_falls_back_to_earliest(self, test_db, customer, product, split_stock):
        oldest, newer = split_stock
        service = OrderService(test_db, restitution_policy="exact")
        order = service.create_order(customer.id, "Cash", [(product.id, 4)])
        test_db.delete(oldest)
        test_db.commit()

        service.update_order_status(order.id, "Cancelled")

        test_db.refresh(newer)
        assert newer.quantity == 14

    def test_no_stock_record_left_skips_line(self, test_db, customer, product, split_stock):
        service = OrderService(test_db)
        order = service.create_order(customer.id, "Cash", [(product.id, 2)])
        for record in split_stock:
            test_db.delete(record)
        test_db.commit()

        order = service.update_order_status(order.id, "Cancelled")

        assert order.status == "Cancelled"
        assert test_db.query(StockRecord).count() == 0

    def test_concurrent_cancellations_credit_once(self, session_factory, test_db, customer, product, split_stock):
        order = OrderService(test_db).create_order(customer.id, "Cash", [(product.id, 6)])
        order_id = order.id

        def cancel(_):
            db = session_factory()
            try:
                return OrderService(db).update_order_status(order_id, "Cancelled").status
            except ConcurrencyConflictError:
                return "conflict"
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(cancel, range(4)))

        assert "Cancelled" in results
        assert _quantities(test_db, split_stock) == [4, 10]
