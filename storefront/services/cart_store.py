"""
Cart store: per-user cart lines
"""
import logging
from typing import Any, Dict, Iterable, List

from storefront.errors import (
    CartLineNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from storefront.models import CartLine, Product

logger = logging.getLogger(__name__)


def _require_positive_int(value, name):
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f'{name} must be a positive integer')


class CartStore:
    """Cart lines bound to one database session.

    add/update/remove commit on their own; the clear operations only stage
    deletes so the order ledger can run them inside its transaction.
    """

    def __init__(self, session):
        self.session = session

    def list_by_user(self, user_id: int) -> List[CartLine]:
        return (self.session.query(CartLine)
                .filter(CartLine.user_id == user_id)
                .order_by(CartLine.id)
                .all())

    def summary(self, user_id: int) -> Dict[str, Any]:
        lines = self.list_by_user(user_id)
        total = sum((line.product.price * line.quantity for line in lines), 0)
        return {
            'items': [line.to_dict() for line in lines],
            'total': float(total),
            'itemCount': len(lines),
        }

    def add(self, user_id: int, product_id: int, quantity: int) -> CartLine:
        _require_positive_int(quantity, 'quantity')

        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(productId=product_id)

        line = (self.session.query(CartLine)
                .filter_by(user_id=user_id, product_id=product_id)
                .first())
        new_quantity = line.quantity + quantity if line else quantity

        if new_quantity > product.stock_quantity:
            raise InsufficientStockError(availableStock=product.stock_quantity)

        if line:
            logger.info(f'Updated cart line quantity from {line.quantity} to {new_quantity}')
            line.quantity = new_quantity
        else:
            line = CartLine(user_id=user_id, product_id=product_id, quantity=quantity)
            self.session.add(line)
            logger.info('New cart line created')

        self.session.commit()
        return line

    def _owned_line(self, user_id: int, line_id: int) -> CartLine:
        line = (self.session.query(CartLine)
                .filter_by(id=line_id, user_id=user_id)
                .first())
        if line is None:
            raise CartLineNotFoundError(cartItemId=line_id)
        return line

    def update_quantity(self, user_id: int, line_id: int, quantity: int):
        """Set a line's quantity; zero or less removes the line"""
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise ValidationError('quantity must be an integer')

        line = self._owned_line(user_id, line_id)

        if quantity <= 0:
            self.session.delete(line)
            self.session.commit()
            return None

        if quantity > line.product.stock_quantity:
            raise InsufficientStockError(availableStock=line.product.stock_quantity)

        line.quantity = quantity
        self.session.commit()
        return line

    def remove(self, user_id: int, line_id: int) -> None:
        line = self._owned_line(user_id, line_id)
        self.session.delete(line)
        self.session.commit()

    def clear_by_user(self, user_id: int) -> int:
        return (self.session.query(CartLine)
                .filter(CartLine.user_id == user_id)
                .delete(synchronize_session=False))

    def clear_products(self, user_id: int, product_ids: Iterable[int]) -> int:
        product_ids = list(product_ids)
        if not product_ids:
            return 0
        return (self.session.query(CartLine)
                .filter(CartLine.user_id == user_id,
                        CartLine.product_id.in_(product_ids))
                .delete(synchronize_session=False))
