from flask import Blueprint, jsonify, current_app
from flask_login import current_user
from storefront import db
from storefront.routes import parse_body
from storefront.schemas import CartAddRequest, CartUpdateRequest
from storefront.services.authenticator import token_required
from storefront.services.cart_store import CartStore

bp = Blueprint('cart', __name__, url_prefix='/api/cart')

@bp.route('', methods=['GET'])
@token_required
def view_cart():
    summary = CartStore(db.session).summary(current_user.id)

    current_app.logger.info(f'Cart contains {summary["itemCount"]} items, total: {summary["total"]}', extra={
        'event_type': 'cart_viewed',
        'user_id': current_user.id,
        'item_count': summary['itemCount'],
        'total_amount': summary['total']
    })
    return jsonify(summary)

@bp.route('', methods=['POST'])
@token_required
def add_to_cart():
    data = parse_body(CartAddRequest)

    current_app.logger.info(f'User {current_user.id} adding product {data.product_id} to cart', extra={
        'event_type': 'cart_add',
        'user_id': current_user.id,
        'product_id': data.product_id,
        'quantity': data.quantity
    })

    CartStore(db.session).add(current_user.id, data.product_id, data.quantity)
    return jsonify({'message': 'Product added to cart'})

@bp.route('/<int:line_id>', methods=['PUT'])
@token_required
def update_cart_line(line_id):
    data = parse_body(CartUpdateRequest)
    CartStore(db.session).update_quantity(current_user.id, line_id, data.quantity)
    return jsonify({'message': 'Cart updated successfully'})

@bp.route('/<int:line_id>', methods=['DELETE'])
@token_required
def remove_from_cart(line_id):
    CartStore(db.session).remove(current_user.id, line_id)
    return jsonify({'message': 'Item removed from cart'})

@bp.route('', methods=['DELETE'])
@token_required
def clear_cart():
    removed = CartStore(db.session).clear_by_user(current_user.id)
    db.session.commit()

    current_app.logger.info(f'Cart cleared for user {current_user.id}', extra={
        'event_type': 'cart_cleared',
        'user_id': current_user.id,
        'removed': removed
    })
    return jsonify({'message': 'Cart cleared successfully'})
