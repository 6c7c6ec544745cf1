#!/usr/bin/env python3
"""
Order ledger unit tests: atomic placement, guarded stock decrement,
price snapshots, cart finalization and idempotent retries
"""
import os
import shutil
import tempfile
import threading
import unittest
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from storefront import db
from storefront.errors import (
    IdempotencyConflictError,
    OrderNotFoundError,
    OutOfStockError,
    ProductNotFoundError,
    StorefrontError,
    TransientDatabaseError,
    ValidationError,
)
from storefront.models import CartLine, Order, OrderItem, Product
from storefront.services.cart_store import CartStore
from storefront.services.order_ledger import LineItem, OrderLedger, request_fingerprint
from storefront_testcase import StorefrontTestCase


class LedgerTestCase(StorefrontTestCase):

    def setUp(self):
        super().setUp()
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.user_id = self.make_user()
        self.ledger = OrderLedger(db.session, config=self.app.config)

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()
        super().tearDown()

    def place(self, items, **kwargs):
        kwargs.setdefault('shipping_address', '123 Main St')
        kwargs.setdefault('payment_method', 'card')
        return self.ledger.place_order(self.user_id, items, **kwargs)


class TestOrderPlacement(LedgerTestCase):

    def test_cart_checkout_scenario(self):
        """Cart line of 2 x product 42 (stock 5, price 10.00) becomes an order"""
        self.make_product(product_id=42, price='10.00', stock=5)
        self.add_cart_line(self.user_id, 42, 2)

        result = self.place([{'product_id': 42, 'quantity': 2}], total_amount='20.00')

        self.assertFalse(result.replayed)
        order = db.session.get(Order, result.order_id)
        self.assertEqual(order.status, 'pending')
        self.assertEqual(order.total_amount, Decimal('20.00'))
        self.assertEqual(order.shipping_address, '123 Main St')
        self.assertEqual(order.payment_method, 'card')

        self.assertEqual(len(order.items), 1)
        item = order.items[0]
        self.assertEqual((item.product_id, item.quantity, item.price), (42, 2, Decimal('10.00')))

        self.assertEqual(self.stock_of(42), 3)
        self.assertEqual(CartStore(db.session).list_by_user(self.user_id), [])

    def test_items_processed_in_submitted_order(self):
        first = self.make_product(name='First', price='5.00', stock=10)
        second = self.make_product(name='Second', price='7.50', stock=10)

        result = self.place([LineItem(second, 1), LineItem(first, 3)])

        order = db.session.get(Order, result.order_id)
        items = sorted(order.items, key=lambda i: i.id)
        self.assertEqual([i.product_id for i in items], [second, first])
        self.assertEqual(order.total_amount, Decimal('22.50'))

    def test_sequential_orders_exceeding_stock(self):
        """Two orders of 3 against stock 5: the second is a conflict"""
        product_id = self.make_product(stock=5)

        self.place([LineItem(product_id, 3)])
        with self.assertRaises(OutOfStockError) as ctx:
            self.place([LineItem(product_id, 3)])

        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.details['availableStock'], 2)
        self.assertEqual(self.stock_of(product_id), 2)
        self.assertEqual(Order.query.count(), 1)

    def test_order_larger_than_stock_leaves_stock_untouched(self):
        product_id = self.make_product(stock=1)

        with self.assertRaises(OutOfStockError):
            self.place([LineItem(product_id, 2)])

        self.assertEqual(self.stock_of(product_id), 1)
        self.assertEqual(Order.query.count(), 0)

    def test_stock_can_reach_exactly_zero(self):
        product_id = self.make_product(stock=3)
        self.place([LineItem(product_id, 3)])
        self.assertEqual(self.stock_of(product_id), 0)

    def test_missing_product_fails_whole_order(self):
        existing = self.make_product(stock=5)
        self.add_cart_line(self.user_id, existing, 1)

        with self.assertRaises(ProductNotFoundError):
            self.place([LineItem(existing, 1), LineItem(9999, 1)])

        self.assertEqual(Order.query.count(), 0)
        self.assertEqual(OrderItem.query.count(), 0)
        self.assertEqual(self.stock_of(existing), 5)
        self.assertEqual(CartLine.query.filter_by(user_id=self.user_id).count(), 1)

    def test_second_line_out_of_stock_rolls_back_first_decrement(self):
        plenty = self.make_product(name='Plenty', stock=10)
        scarce = self.make_product(name='Scarce', stock=1)

        with self.assertRaises(OutOfStockError):
            self.place([LineItem(plenty, 4), LineItem(scarce, 2)])

        self.assertEqual(self.stock_of(plenty), 10)
        self.assertEqual(self.stock_of(scarce), 1)
        self.assertEqual(Order.query.count(), 0)

    def test_failure_on_cart_clear_rolls_back_everything(self):
        product_id = self.make_product(stock=5)
        self.add_cart_line(self.user_id, product_id, 2)
        failure = OperationalError('DELETE FROM cart', {}, Exception('disk I/O error'))

        with patch.object(CartStore, 'clear_by_user', side_effect=failure):
            with self.assertRaises(TransientDatabaseError) as ctx:
                self.place([LineItem(product_id, 2)])

        self.assertIsInstance(ctx.exception, StorefrontError)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(Order.query.count(), 0)
        self.assertEqual(OrderItem.query.count(), 0)
        self.assertEqual(self.stock_of(product_id), 5)
        self.assertEqual(CartLine.query.filter_by(user_id=self.user_id).count(), 1)

    def test_price_snapshot_survives_price_change(self):
        product_id = self.make_product(price='10.00', stock=5)
        result = self.place([LineItem(product_id, 1)])

        product = db.session.get(Product, product_id)
        product.price = Decimal('25.00')
        db.session.commit()

        db.session.expire_all()
        item = OrderItem.query.filter_by(order_id=result.order_id).one()
        self.assertEqual(item.price, Decimal('10.00'))

    def test_client_line_price_is_ignored(self):
        product_id = self.make_product(price='10.00', stock=5)
        result = self.place([{'product_id': product_id, 'quantity': 1, 'price': '0.01'}])

        item = OrderItem.query.filter_by(order_id=result.order_id).one()
        self.assertEqual(item.price, Decimal('10.00'))


class TestOrderValidation(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.product_id = self.make_product(stock=5)

    def test_empty_items_rejected(self):
        with self.assertRaises(ValidationError):
            self.place([])

    def test_non_positive_quantity_rejected(self):
        for quantity in (0, -1):
            with self.assertRaises(ValidationError):
                self.place([LineItem(self.product_id, quantity)])

    def test_non_integer_product_id_rejected(self):
        with self.assertRaises(ValidationError):
            self.place([{'product_id': 'abc', 'quantity': 1}])

    def test_blank_shipping_address_rejected(self):
        with self.assertRaises(ValidationError):
            self.place([LineItem(self.product_id, 1)], shipping_address='   ')

    def test_unknown_payment_method_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.place([LineItem(self.product_id, 1)], payment_method='bitcoin')
        self.assertIn('cod', ctx.exception.details['acceptedMethods'])

    def test_validation_failure_writes_nothing(self):
        with self.assertRaises(ValidationError):
            self.place([LineItem(self.product_id, 1)], payment_method='')
        self.assertEqual(Order.query.count(), 0)
        self.assertEqual(self.stock_of(self.product_id), 5)


class TestOrderTotals(LedgerTestCase):

    def test_mismatched_total_rejected_under_verify(self):
        product_id = self.make_product(price='10.00', stock=5)

        with self.assertRaises(ValidationError) as ctx:
            self.place([LineItem(product_id, 2)], total_amount='5.00')

        self.assertEqual(ctx.exception.details['expectedTotal'], 20.0)
        self.assertEqual(Order.query.count(), 0)
        self.assertEqual(self.stock_of(product_id), 5)

    def test_total_within_tolerance_accepted(self):
        product_id = self.make_product(price='10.00', stock=5)
        result = self.place([LineItem(product_id, 2)], total_amount=20.005)
        self.assertEqual(result.total_amount, Decimal('20.00'))

    def test_shipping_and_tax_added_to_server_total(self):
        product_id = self.make_product(price='10.00', stock=5)
        ledger = OrderLedger(db.session, config={
            'SHIPPING_FEE': Decimal('4.99'),
            'TAX_RATE': Decimal('0.08'),
        })

        result = ledger.place_order(self.user_id, [LineItem(product_id, 2)], '1 Elm St', 'paypal')

        # 20.00 + 4.99 shipping + 1.60 tax
        self.assertEqual(result.total_amount, Decimal('26.59'))

    def test_trust_policy_stores_submitted_total(self):
        product_id = self.make_product(price='10.00', stock=5)
        ledger = OrderLedger(db.session, config={'ORDER_TOTAL_POLICY': 'trust'})

        result = ledger.place_order(self.user_id, [LineItem(product_id, 2)], '1 Elm St', 'cod',
                                    total_amount='18.00')

        self.assertEqual(db.session.get(Order, result.order_id).total_amount, Decimal('18.00'))

    def test_unknown_policy_rejected(self):
        with self.assertRaises(ValueError):
            OrderLedger(db.session, config={'ORDER_TOTAL_POLICY': 'guess'})


class TestCartFinalization(LedgerTestCase):

    def test_full_clear_removes_unordered_lines(self):
        ordered = self.make_product(name='Ordered', stock=5)
        other = self.make_product(name='Other', stock=5)
        self.add_cart_line(self.user_id, ordered, 1)
        self.add_cart_line(self.user_id, other, 1)

        self.place([LineItem(ordered, 1)])

        self.assertEqual(CartStore(db.session).list_by_user(self.user_id), [])

    def test_ordered_scope_keeps_unordered_lines(self):
        ordered = self.make_product(name='Ordered', stock=5)
        other = self.make_product(name='Other', stock=5)
        self.add_cart_line(self.user_id, ordered, 1)
        self.add_cart_line(self.user_id, other, 1)
        ledger = OrderLedger(db.session, config={'CART_CLEAR_SCOPE': 'ordered'})

        ledger.place_order(self.user_id, [LineItem(ordered, 1)], '1 Elm St', 'card')

        remaining = CartStore(db.session).list_by_user(self.user_id)
        self.assertEqual([line.product_id for line in remaining], [other])

    def test_other_users_cart_untouched(self):
        product_id = self.make_product(stock=5)
        other_user = self.make_user(email='other@example.com')
        self.add_cart_line(other_user, product_id, 1)

        self.place([LineItem(product_id, 1)])

        self.assertEqual(len(CartStore(db.session).list_by_user(other_user)), 1)


class TestIdempotentPlacement(LedgerTestCase):

    def test_retry_with_same_key_returns_original_order(self):
        product_id = self.make_product(stock=5)

        first = self.place([LineItem(product_id, 2)], idempotency_key='checkout-1')
        retry = self.place([LineItem(product_id, 2)], idempotency_key='checkout-1')

        self.assertEqual(retry.order_id, first.order_id)
        self.assertTrue(retry.replayed)
        self.assertEqual(Order.query.count(), 1)
        self.assertEqual(self.stock_of(product_id), 3)

    def test_same_key_different_request_conflicts(self):
        product_id = self.make_product(stock=5)
        self.place([LineItem(product_id, 2)], idempotency_key='checkout-1')

        with self.assertRaises(IdempotencyConflictError):
            self.place([LineItem(product_id, 1)], idempotency_key='checkout-1')

        self.assertEqual(self.stock_of(product_id), 3)

    def test_keys_are_scoped_per_user(self):
        product_id = self.make_product(stock=5)
        other_user = self.make_user(email='other@example.com')

        self.place([LineItem(product_id, 1)], idempotency_key='shared')
        other = self.ledger.place_order(other_user, [LineItem(product_id, 1)], '9 Oak Ave', 'card',
                                        idempotency_key='shared')

        self.assertFalse(other.replayed)
        self.assertEqual(Order.query.count(), 2)

    def test_fingerprint_tracks_request_fields(self):
        items = [LineItem(1, 2)]
        base = request_fingerprint(items, 'A', 'card', None)
        self.assertEqual(base, request_fingerprint([LineItem(1, 2)], 'A', 'card', None))
        self.assertNotEqual(base, request_fingerprint(items, 'B', 'card', None))
        self.assertNotEqual(base, request_fingerprint(items, 'A', 'card', Decimal('1')))

    def test_fingerprint_normalizes_total_to_cents(self):
        items = [LineItem(1, 2)]
        base = request_fingerprint(items, 'A', 'card', Decimal('20'))
        self.assertEqual(base, request_fingerprint(items, 'A', 'card', Decimal('20.0')))
        self.assertEqual(base, request_fingerprint(items, 'A', 'card', Decimal('20.00')))
        self.assertNotEqual(base, request_fingerprint(items, 'A', 'card', Decimal('20.01')))

    def test_retry_with_total_written_differently_replays(self):
        product_id = self.make_product(price='10.00', stock=5)

        first = self.place([LineItem(product_id, 2)], total_amount=20, idempotency_key='checkout-1')
        retry = self.place([LineItem(product_id, 2)], total_amount='20.00', idempotency_key='checkout-1')

        self.assertTrue(retry.replayed)
        self.assertEqual(retry.order_id, first.order_id)
        self.assertEqual(self.stock_of(product_id), 3)

    def test_non_finite_total_rejected(self):
        product_id = self.make_product(stock=5)
        with self.assertRaises(ValidationError):
            self.place([LineItem(product_id, 1)], total_amount='Infinity', idempotency_key='checkout-1')
        self.assertEqual(self.stock_of(product_id), 5)


class TestOrderReads(LedgerTestCase):

    def test_orders_for_user_newest_first(self):
        product_id = self.make_product(stock=10)
        first = self.place([LineItem(product_id, 1)])
        second = self.place([LineItem(product_id, 1)])

        orders = self.ledger.orders_for_user(self.user_id)
        self.assertEqual([o.id for o in orders], [second.order_id, first.order_id])

    def test_order_of_another_user_not_found(self):
        product_id = self.make_product(stock=10)
        result = self.place([LineItem(product_id, 1)])
        stranger = self.make_user(email='stranger@example.com')

        with self.assertRaises(OrderNotFoundError):
            self.ledger.order_for_user(stranger, result.order_id)

    def test_status_transitions_are_unconstrained(self):
        product_id = self.make_product(stock=10)
        order_id = self.place([LineItem(product_id, 1)]).order_id

        for status in ('delivered', 'pending', 'cancelled', 'confirmed'):
            self.assertEqual(self.ledger.update_status(order_id, status).status, status)

    def test_invalid_status_rejected(self):
        product_id = self.make_product(stock=10)
        order_id = self.place([LineItem(product_id, 1)]).order_id

        with self.assertRaises(ValidationError):
            self.ledger.update_status(order_id, 'lost')
        self.assertEqual(db.session.get(Order, order_id).status, 'pending')

    def test_status_update_on_missing_order(self):
        with self.assertRaises(OrderNotFoundError):
            self.ledger.update_status(12345, 'shipped')

    def test_admin_filter_by_status(self):
        product_id = self.make_product(stock=10)
        kept = self.place([LineItem(product_id, 1)]).order_id
        shipped = self.place([LineItem(product_id, 1)]).order_id
        self.ledger.update_status(shipped, 'shipped')

        self.assertEqual([o.id for o in self.ledger.all_orders(status='pending')], [kept])
        self.assertEqual(len(self.ledger.all_orders()), 2)

    def test_dashboard_stats(self):
        cheap = self.make_product(name='Cheap', price='10.00', stock=10)
        self.make_product(name='Nearly gone', price='3.00', stock=2)
        self.place([LineItem(cheap, 2)])
        cancelled = self.place([LineItem(cheap, 1)]).order_id
        self.ledger.update_status(cancelled, 'cancelled')

        stats = self.ledger.dashboard_stats()

        self.assertEqual(stats['totalOrders'], 2)
        self.assertEqual(stats['totalRevenue'], 20.0)
        self.assertEqual(stats['ordersByStatus']['cancelled'], 1)
        self.assertEqual(stats['ordersByStatus']['pending'], 1)
        self.assertEqual([p['name'] for p in stats['lowStockProducts']], ['Nearly gone'])


class TestConcurrentPlacement(StorefrontTestCase):
    """Two orders race for the same stock on a file-backed database"""

    def setUp(self):
        self.db_dir = tempfile.mkdtemp()
        self.config_overrides = {
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///' + os.path.join(self.db_dir, 'ledger.db'),
            'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        }
        super().setUp()
        with self.app.app_context():
            self.product_id = self.make_product(stock=5)
            self.user_ids = [
                self.make_user(email='first@example.com'),
                self.make_user(email='second@example.com'),
            ]

    def tearDown(self):
        super().tearDown()
        shutil.rmtree(self.db_dir, ignore_errors=True)

    def place_concurrently(self, quantity):
        barrier = threading.Barrier(len(self.user_ids))
        results = []
        lock = threading.Lock()

        def checkout(user_id):
            with self.app.app_context():
                ledger = OrderLedger(db.session, config=self.app.config)
                barrier.wait()
                try:
                    ledger.place_order(user_id, [LineItem(self.product_id, quantity)], '123 Main St', 'card')
                    outcome = 'ok'
                except StorefrontError as e:
                    outcome = type(e).__name__
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        threads = [threading.Thread(target=checkout, args=(user_id,)) for user_id in self.user_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return results

    def test_only_one_of_two_racing_orders_succeeds(self):
        results = self.place_concurrently(3)

        self.assertEqual(sorted(results), ['OutOfStockError', 'ok'])
        with self.app.app_context():
            self.assertEqual(self.stock_of(self.product_id), 2)
            self.assertEqual(Order.query.count(), 1)
            self.assertEqual(OrderItem.query.count(), 1)

    def test_racing_orders_within_stock_both_succeed(self):
        results = self.place_concurrently(2)

        self.assertEqual(results, ['ok', 'ok'])
        with self.app.app_context():
            self.assertEqual(self.stock_of(self.product_id), 1)
            self.assertEqual(Order.query.count(), 2)


if __name__ == '__main__':
    unittest.main()
