"""
Shared unittest base class for the storefront tests
"""
import unittest
from decimal import Decimal

from storefront import create_app, db
from storefront.models import CartLine, Category, Product, User
from storefront.models.user import ROLE_ADMIN, ROLE_REGULAR
from storefront.services.authenticator import issue_token


class StorefrontTestCase(unittest.TestCase):
    """Fresh app and in-memory database per test.

    Data helpers need an active app context. HTTP tests must not keep one
    pushed while using the test client, or the request would share ``g``
    (and the cached Flask-Login user) with the test body.
    """

    config_overrides = {}

    def setUp(self):
        config = {
            'TESTING': True,
            'SECRET_KEY': 'test-secret-key',
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'ORDER_TOTAL_POLICY': 'verify',
            'CART_CLEAR_SCOPE': 'all',
            'SHIPPING_FEE': Decimal('0.00'),
            'TAX_RATE': Decimal('0'),
        }
        config.update(self.config_overrides)
        self.app = create_app(config)
        self.client = self.app.test_client()
        with self.app.app_context():
            db.create_all()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.engine.dispose()

    # Data helpers (return ids so nothing leaks across sessions)

    def make_user(self, email='shopper@example.com', role=ROLE_REGULAR, name='Shopper'):
        user = User(name=name, email=email, role=role, phone='555-0100')
        user.set_password('password123')
        db.session.add(user)
        db.session.commit()
        return user.id

    def make_admin(self, email='admin@example.com'):
        return self.make_user(email=email, role=ROLE_ADMIN, name='Admin')

    def make_category(self, name='Tops'):
        category = Category(name=name, description=f'{name} category')
        db.session.add(category)
        db.session.commit()
        return category.id

    def make_product(self, name='Cotton Tee', price='10.00', stock=5, category_id=None, product_id=None):
        product = Product(
            name=name,
            price=Decimal(price),
            stock_quantity=stock,
            category_id=category_id,
            brand='Basics',
        )
        if product_id is not None:
            product.id = product_id
        db.session.add(product)
        db.session.commit()
        return product.id

    def add_cart_line(self, user_id, product_id, quantity):
        line = CartLine(user_id=user_id, product_id=product_id, quantity=quantity)
        db.session.add(line)
        db.session.commit()
        return line.id

    def stock_of(self, product_id):
        db.session.expire_all()
        return db.session.get(Product, product_id).stock_quantity

    def auth_headers(self, user_id):
        with self.app.app_context():
            token = issue_token(db.session.get(User, user_id))
        return {'Authorization': f'Bearer {token}'}
