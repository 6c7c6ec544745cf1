#!/usr/bin/env python3
"""
Database initialization script
Creates tables and sample catalog data for the storefront
"""

from decimal import Decimal

from storefront import create_app, db
from storefront.models import Category, Product, User

SAMPLE_CATEGORIES = [
    {'name': 'Tops', 'description': 'T-shirts, shirts and knitwear'},
    {'name': 'Bottoms', 'description': 'Jeans, trousers and skirts'},
    {'name': 'Shoes', 'description': 'Sneakers, boots and sandals'},
]

SAMPLE_PRODUCTS = [
    {
        'name': 'Classic Cotton T-Shirt',
        'description': 'Soft everyday crew-neck tee',
        'price': Decimal('19.99'),
        'original_price': Decimal('24.99'),
        'stock_quantity': 50,
        'size': 'M',
        'color': 'White',
        'brand': 'Basics',
        'is_featured': True,
        'category': 'Tops',
    },
    {
        'name': 'Oxford Button-Down Shirt',
        'description': 'Slim fit oxford shirt',
        'price': Decimal('39.00'),
        'stock_quantity': 20,
        'size': 'L',
        'color': 'Blue',
        'brand': 'Tailor & Co',
        'category': 'Tops',
    },
    {
        'name': 'Straight Leg Jeans',
        'description': 'Mid-rise straight leg denim',
        'price': Decimal('59.90'),
        'original_price': Decimal('69.90'),
        'stock_quantity': 30,
        'size': '32',
        'color': 'Indigo',
        'brand': 'Denimworks',
        'category': 'Bottoms',
    },
    {
        'name': 'Pleated Midi Skirt',
        'description': 'Flowing pleated skirt',
        'price': Decimal('45.00'),
        'stock_quantity': 12,
        'size': 'S',
        'color': 'Black',
        'brand': 'Atelier',
        'category': 'Bottoms',
    },
    {
        'name': 'Canvas Low-Top Sneakers',
        'description': 'Lightweight canvas sneakers',
        'price': Decimal('49.50'),
        'stock_quantity': 25,
        'size': '42',
        'color': 'Off-white',
        'brand': 'Stride',
        'is_featured': True,
        'category': 'Shoes',
    },
    {
        'name': 'Leather Chelsea Boots',
        'description': 'Pull-on leather boots with elastic sides',
        'price': Decimal('129.00'),
        'stock_quantity': 8,
        'size': '43',
        'color': 'Brown',
        'brand': 'Stride',
        'category': 'Shoes',
    },
]

def init_db():
    app = create_app()

    with app.app_context():
        # Create all tables
        print("Creating database tables...")
        db.create_all()

        # Check if products already exist
        if Product.query.first():
            print("Database already initialized.")
            return

        print("Creating sample categories...")
        categories = {}
        for category_data in SAMPLE_CATEGORIES:
            category = Category(**category_data)
            db.session.add(category)
            categories[category.name] = category

        print("Creating sample products...")
        for product_data in SAMPLE_PRODUCTS:
            product_data = dict(product_data)
            category = categories[product_data.pop('category')]
            db.session.add(Product(category=category, **product_data))

        # Create a test user
        print("Creating test user...")
        test_user = User(name='Test User', email='test@example.com')
        test_user.set_password('password123')
        db.session.add(test_user)

        db.session.commit()
        print("Database initialized successfully!")

if __name__ == '__main__':
    init_db()
