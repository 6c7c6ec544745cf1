from storefront import db
from datetime import datetime

class CartLine(db.Model):
    __tablename__ = 'cart'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'product_id', name='uq_cart_user_product'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'name': self.product.name,
            'price': float(self.product.price),
            'image': self.product.image,
            'brand': self.product.brand,
            'stock_quantity': self.product.stock_quantity,
            'item_total': float(self.product.price * self.quantity),
        }

    def __repr__(self):
        return f'<CartLine user={self.user_id} product={self.product_id} x{self.quantity}>'
