from storefront import db
from datetime import datetime

class Product(db.Model):
    __tablename__ = 'products'
    __table_args__ = (
        db.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    original_price = db.Column(db.Numeric(10, 2))  # display only
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'))
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    size = db.Column(db.String(50))
    color = db.Column(db.String(50))
    brand = db.Column(db.String(100))
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    image = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    order_items = db.relationship('OrderItem', backref='product', lazy=True)
    cart_lines = db.relationship('CartLine', backref='product', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': float(self.price),
            'original_price': float(self.original_price) if self.original_price is not None else None,
            'category_id': self.category_id,
            'category_name': self.category.name if self.category else None,
            'stock_quantity': self.stock_quantity,
            'size': self.size,
            'color': self.color,
            'brand': self.brand,
            'is_featured': self.is_featured,
            'image': self.image,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Product {self.name}>'
