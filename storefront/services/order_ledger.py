"""
Order ledger: turns line items into an immutable order in one transaction.

place_order inserts the Order and its OrderItems, decrements stock with a
guarded update and finalizes the cart. Either every effect commits or the
whole transaction is rolled back. Concurrent orders for the same product
are serialized by the database row lock; no in-process locking is used.
"""
import hashlib
import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as SQLTimeoutError,
)

from storefront.errors import (
    IdempotencyConflictError,
    OrderNotFoundError,
    OrderPlacementError,
    OutOfStockError,
    StorefrontError,
    TransientDatabaseError,
    ValidationError,
)
from storefront.models import ORDER_STATUSES, Order, OrderItem, Product, User
from storefront.services.cart_store import CartStore
from storefront.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')

DEFAULT_POLICY = {
    'ORDER_TOTAL_POLICY': 'verify',
    'TOTAL_TOLERANCE': Decimal('0.01'),
    'SHIPPING_FEE': Decimal('0.00'),
    'TAX_RATE': Decimal('0'),
    'CART_CLEAR_SCOPE': 'all',
    'PAYMENT_METHODS': ['card', 'paypal', 'cod'],
    'LOW_STOCK_THRESHOLD': 5,
}

TOTAL_POLICIES = ('verify', 'trust')
CART_CLEAR_SCOPES = ('all', 'ordered')


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int


@dataclass
class PlacementResult:
    order_id: int
    total_amount: Decimal
    replayed: bool = False


def _to_decimal(value, name) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{name} must be a number')
    if not number.is_finite():
        raise ValidationError(f'{name} must be a number')
    return number


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def request_fingerprint(items: List[LineItem], shipping_address: str,
                        payment_method: str, total_amount: Optional[Decimal]) -> str:
    """Stable hash of a placement request, stored alongside its idempotency key"""
    body = {
        'items': [[item.product_id, item.quantity] for item in items],
        'shipping_address': shipping_address,
        'payment_method': payment_method,
        'total_amount': str(total_amount.quantize(CENT)) if total_amount is not None else None,
    }
    return hashlib.sha256(json.dumps(body, sort_keys=True).encode()).hexdigest()


class OrderLedger:
    """Order placement and order reads bound to one database session"""

    def __init__(self, session, config: Optional[Mapping[str, Any]] = None,
                 catalog: Optional[CatalogStore] = None, cart: Optional[CartStore] = None):
        self.session = session
        self.catalog = catalog or CatalogStore(session)
        self.cart = cart or CartStore(session)

        self.config = dict(DEFAULT_POLICY)
        if config:
            self.config.update({key: config[key] for key in DEFAULT_POLICY if key in config})

        if self.config['ORDER_TOTAL_POLICY'] not in TOTAL_POLICIES:
            raise ValueError(f"ORDER_TOTAL_POLICY must be one of {TOTAL_POLICIES}")
        if self.config['CART_CLEAR_SCOPE'] not in CART_CLEAR_SCOPES:
            raise ValueError(f"CART_CLEAR_SCOPE must be one of {CART_CLEAR_SCOPES}")

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def place_order(self, user_id: int, line_items: Iterable[Any], shipping_address: str,
                    payment_method: str, total_amount=None,
                    idempotency_key: Optional[str] = None) -> PlacementResult:
        """
        Place an order atomically.

        Args:
            user_id (int): authenticated user placing the order
            line_items: LineItem objects or mappings with product_id and quantity,
                processed in the given order
            shipping_address (str): free-text address
            payment_method (str): payment method tag
            total_amount: client-computed total, checked against the server total
                under the 'verify' policy
            idempotency_key (Optional[str]): retries with the same key return
                the original order instead of placing a new one

        Returns:
            PlacementResult: id of the new (or replayed) order
        """
        items = self._validate_line_items(line_items)
        shipping_address = (shipping_address or '').strip()
        payment_method = (payment_method or '').strip()
        self._validate_checkout_fields(shipping_address, payment_method)
        submitted_total = _to_decimal(total_amount, 'totalAmount') if total_amount is not None else None

        fingerprint = None
        if idempotency_key:
            fingerprint = request_fingerprint(items, shipping_address, payment_method, submitted_total)
            prior = self._find_by_idempotency_key(user_id, idempotency_key)
            if prior is not None:
                return self._replay(prior, fingerprint)

        logger.info(f'Creating order for user {user_id}', extra={
            'event_type': 'order_create',
            'user_id': user_id,
            'item_count': len(items)
        })

        try:
            order = Order(
                user_id=user_id,
                total_amount=Decimal('0.00'),
                status='pending',
                shipping_address=shipping_address,
                payment_method=payment_method,
                idempotency_key=idempotency_key,
                request_fingerprint=fingerprint,
            )
            self.session.add(order)
            self.session.flush()

            subtotal = Decimal('0.00')
            for item in items:
                subtotal += self._reserve_line(order, item)

            order.total_amount = self._settle_total(subtotal, submitted_total)
            self._finalize_cart(user_id, items)

            self.session.commit()

        except StorefrontError as e:
            self.session.rollback()
            logger.warning(f'Order placement aborted for user {user_id}: {e.message}', extra={
                'event_type': 'order_aborted',
                'user_id': user_id,
                'error_category': e.error_category
            })
            raise
        except IntegrityError as e:
            self.session.rollback()
            if idempotency_key:
                # A concurrent retry with the same key committed first
                prior = self._find_by_idempotency_key(user_id, idempotency_key)
                if prior is not None:
                    return self._replay(prior, fingerprint)
            logger.error(f'Order placement failed for user {user_id}: {e}', extra={
                'event_type': 'order_error',
                'user_id': user_id
            })
            raise OrderPlacementError() from e
        except (OperationalError, DisconnectionError, SQLTimeoutError) as e:
            self.session.rollback()
            logger.error(f'Database unavailable during order placement: {e}', extra={
                'event_type': 'order_error',
                'user_id': user_id,
                'error_category': 'transient'
            })
            raise TransientDatabaseError() from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f'Order placement failed for user {user_id}: {e}', extra={
                'event_type': 'order_error',
                'user_id': user_id
            })
            raise OrderPlacementError() from e

        logger.info('Order placed successfully', extra={
            'event_type': 'order_success',
            'user_id': user_id,
            'order_id': order.id,
            'total_amount': float(order.total_amount)
        })
        return PlacementResult(order_id=order.id, total_amount=order.total_amount)

    def _validate_line_items(self, line_items) -> List[LineItem]:
        items = []
        for raw in line_items or []:
            if isinstance(raw, LineItem):
                item = raw
            else:
                product_id = raw.get('product_id')
                quantity = raw.get('quantity')
                if not _is_int(product_id):
                    raise ValidationError('product_id must be an integer')
                item = LineItem(product_id=product_id, quantity=quantity)
            if not _is_int(item.quantity) or item.quantity <= 0:
                raise ValidationError('quantity must be a positive integer', productId=item.product_id)
            items.append(item)

        if not items:
            raise ValidationError('Order must contain at least one item')
        return items

    def _validate_checkout_fields(self, shipping_address: str, payment_method: str):
        if not shipping_address:
            raise ValidationError('Shipping address is required')
        if not payment_method:
            raise ValidationError('Payment method is required')
        accepted = self.config['PAYMENT_METHODS']
        if accepted and payment_method not in accepted:
            raise ValidationError('Unsupported payment method', acceptedMethods=list(accepted))

    def _reserve_line(self, order: Order, item: LineItem) -> Decimal:
        """Snapshot the price, decrement stock and record the order item"""
        product = self.catalog.lock_product(item.product_id)
        price = product.price

        if self.catalog.decrement_stock(item.product_id, item.quantity) == 0:
            raise OutOfStockError(
                f'Out of stock: {product.name}',
                productId=item.product_id,
                requested=item.quantity,
                availableStock=product.stock_quantity,
            )

        self.session.add(OrderItem(
            order_id=order.id,
            product_id=item.product_id,
            quantity=item.quantity,
            price=price,
        ))
        logger.debug(f'Added order item: {product.name} x{item.quantity}')
        return price * item.quantity

    def _settle_total(self, subtotal: Decimal, submitted_total: Optional[Decimal]) -> Decimal:
        shipping = _to_decimal(self.config['SHIPPING_FEE'], 'SHIPPING_FEE')
        tax = (subtotal * _to_decimal(self.config['TAX_RATE'], 'TAX_RATE')).quantize(CENT, rounding=ROUND_HALF_UP)
        computed = (subtotal + shipping + tax).quantize(CENT, rounding=ROUND_HALF_UP)

        if self.config['ORDER_TOTAL_POLICY'] == 'trust':
            return submitted_total if submitted_total is not None else computed

        tolerance = _to_decimal(self.config['TOTAL_TOLERANCE'], 'TOTAL_TOLERANCE')
        if submitted_total is not None and abs(submitted_total - computed) > tolerance:
            raise ValidationError(
                'Order total does not match current prices',
                expectedTotal=float(computed),
                submittedTotal=float(submitted_total),
            )
        return computed

    def _finalize_cart(self, user_id: int, items: List[LineItem]) -> int:
        if self.config['CART_CLEAR_SCOPE'] == 'ordered':
            return self.cart.clear_products(user_id, {item.product_id for item in items})
        return self.cart.clear_by_user(user_id)

    def _find_by_idempotency_key(self, user_id: int, key: str) -> Optional[Order]:
        return (self.session.query(Order)
                .filter_by(user_id=user_id, idempotency_key=key)
                .first())

    def _replay(self, order: Order, fingerprint: Optional[str]) -> PlacementResult:
        if order.request_fingerprint != fingerprint:
            raise IdempotencyConflictError(orderId=order.id)
        logger.info(f'Replaying order {order.id} for idempotency key', extra={
            'event_type': 'order_replayed',
            'user_id': order.user_id,
            'order_id': order.id
        })
        return PlacementResult(order_id=order.id, total_amount=order.total_amount, replayed=True)

    # ------------------------------------------------------------------
    # Reads and admin transitions
    # ------------------------------------------------------------------

    def orders_for_user(self, user_id: int) -> List[Order]:
        return (self.session.query(Order)
                .filter(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .all())

    def order_for_user(self, user_id: int, order_id: int) -> Order:
        order = (self.session.query(Order)
                 .filter(Order.id == order_id, Order.user_id == user_id)
                 .first())
        if order is None:
            raise OrderNotFoundError()
        return order

    def all_orders(self, status: Optional[str] = None) -> List[Order]:
        query = self.session.query(Order)
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def order_details(self, order_id: int) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError()
        return order

    def update_status(self, order_id: int, status: str) -> Order:
        """Admin transition; any status may follow any other"""
        if status not in ORDER_STATUSES:
            raise ValidationError('Invalid status', validStatuses=list(ORDER_STATUSES))

        order = self.order_details(order_id)
        previous = order.status
        order.status = status
        self.session.commit()

        logger.info(f'Order {order_id} status {previous} -> {status}', extra={
            'event_type': 'order_status_updated',
            'order_id': order_id,
            'previous_status': previous,
            'status': status
        })
        return order

    def dashboard_stats(self) -> Dict[str, Any]:
        revenue = (self.session.query(func.coalesce(func.sum(Order.total_amount), 0))
                   .filter(Order.status != 'cancelled')
                   .scalar())
        by_status = dict(self.session.query(Order.status, func.count(Order.id))
                         .group_by(Order.status)
                         .all())
        low_stock = (self.session.query(Product)
                     .filter(Product.stock_quantity < self.config['LOW_STOCK_THRESHOLD'])
                     .order_by(Product.stock_quantity)
                     .all())
        return {
            'totalUsers': self.session.query(func.count(User.id)).scalar(),
            'totalProducts': self.session.query(func.count(Product.id)).scalar(),
            'totalOrders': self.session.query(func.count(Order.id)).scalar(),
            'totalRevenue': float(revenue or 0),
            'ordersByStatus': {status: by_status.get(status, 0) for status in ORDER_STATUSES},
            'lowStockProducts': [
                {'id': p.id, 'name': p.name, 'stock_quantity': p.stock_quantity}
                for p in low_stock
            ],
        }
