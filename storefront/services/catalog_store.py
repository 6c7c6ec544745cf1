"""
Catalog store: product and category access, including the guarded stock decrement
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from storefront.errors import (
    CategoryInUseError,
    CategoryNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from storefront.models import Category, Product

logger = logging.getLogger(__name__)

EDITABLE_PRODUCT_FIELDS = (
    'name', 'description', 'price', 'original_price', 'stock_quantity',
    'is_featured', 'size', 'color', 'brand', 'image', 'category_id',
)


class CatalogStore:
    """Products and categories bound to one database session"""

    def __init__(self, session):
        self.session = session

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.session.get(Product, product_id)

    def lock_product(self, product_id: int) -> Product:
        """Read a product row with a row lock held until the transaction ends"""
        product = (self.session.query(Product)
                   .filter(Product.id == product_id)
                   .with_for_update()
                   .first())
        if product is None:
            raise ProductNotFoundError(productId=product_id)
        return product

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        """
        Decrement stock only when enough is left.

        Returns:
            int: affected row count; 0 means insufficient stock
        """
        affected = (self.session.query(Product)
                    .filter(Product.id == product_id,
                            Product.stock_quantity >= quantity)
                    .update({Product.stock_quantity: Product.stock_quantity - quantity},
                            synchronize_session='fetch'))
        logger.debug(f'Stock decrement product={product_id} qty={quantity} affected={affected}')
        return affected

    def list_products(self, category_id: Optional[int] = None,
                      featured: Optional[bool] = None,
                      search: Optional[str] = None) -> List[Product]:
        query = self.session.query(Product)
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if featured is not None:
            query = query.filter(Product.is_featured.is_(featured))
        if search:
            pattern = f'%{search}%'
            query = query.filter(Product.name.ilike(pattern) | Product.brand.ilike(pattern))
        return query.order_by(Product.created_at.desc(), Product.id.desc()).all()

    def list_categories(self) -> List[Category]:
        return self.session.query(Category).order_by(Category.name).all()

    def update_product(self, product_id: int, **fields) -> Product:
        product = self.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(productId=product_id)

        unknown = set(fields) - set(EDITABLE_PRODUCT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")

        for money_field in ('price', 'original_price'):
            if money_field in fields and fields[money_field] is not None:
                try:
                    fields[money_field] = Decimal(str(fields[money_field]))
                except InvalidOperation:
                    raise ValidationError(f'{money_field} must be a number')
        if 'price' in fields and (fields['price'] is None or fields['price'] <= 0):
            raise ValidationError('price must be positive')
        if 'stock_quantity' in fields:
            stock = fields['stock_quantity']
            if not isinstance(stock, int) or isinstance(stock, bool) or stock < 0:
                raise ValidationError('stock_quantity must be a non-negative integer')
        if fields.get('category_id') is not None and self.session.get(Category, fields['category_id']) is None:
            raise CategoryNotFoundError(categoryId=fields['category_id'])

        for name, value in fields.items():
            setattr(product, name, value)
        self.session.commit()

        logger.info(f'Product {product_id} updated', extra={
            'event_type': 'product_updated',
            'product_id': product_id,
            'fields': sorted(fields)
        })
        return product

    def delete_category(self, category_id: int) -> None:
        category = self.session.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundError(categoryId=category_id)

        product_count = (self.session.query(Product)
                         .filter(Product.category_id == category_id)
                         .count())
        if product_count:
            raise CategoryInUseError(productCount=product_count)

        self.session.delete(category)
        self.session.commit()
        logger.info(f'Category {category_id} deleted', extra={
            'event_type': 'category_deleted',
            'category_id': category_id
        })
