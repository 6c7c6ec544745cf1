from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user
from storefront import db
from storefront.errors import ValidationError
from storefront.routes import parse_body
from storefront.schemas import IDEMPOTENCY_KEY_MAX_LENGTH, OrderCreateRequest
from storefront.services.authenticator import token_required
from storefront.services.order_ledger import LineItem, OrderLedger

bp = Blueprint('orders', __name__, url_prefix='/api/orders')

def _ledger():
    return OrderLedger(db.session, config=current_app.config)

@bp.route('', methods=['POST'])
@token_required
def create_order():
    data = parse_body(OrderCreateRequest)
    idempotency_key = request.headers.get('Idempotency-Key') or data.idempotency_key
    if idempotency_key and len(idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise ValidationError(f'Idempotency-Key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters')

    current_app.logger.info(f'Checkout initiated by user {current_user.id}', extra={
        'event_type': 'checkout_start',
        'user_id': current_user.id,
        'item_count': len(data.items),
        'idempotent': bool(idempotency_key)
    })

    result = _ledger().place_order(
        current_user.id,
        [LineItem(product_id=item.product_id, quantity=item.quantity) for item in data.items],
        data.shipping_address,
        data.payment_method,
        total_amount=data.total_amount,
        idempotency_key=idempotency_key,
    )

    if result.replayed:
        return jsonify({
            'message': 'Order already created',
            'orderId': result.order_id,
            'replayed': True
        }), 200

    return jsonify({
        'message': 'Order created successfully',
        'orderId': result.order_id
    }), 201

@bp.route('', methods=['GET'])
@token_required
def list_orders():
    orders = _ledger().orders_for_user(current_user.id)
    return jsonify([order.to_dict() for order in orders])

@bp.route('/<int:order_id>', methods=['GET'])
@token_required
def order_detail(order_id):
    order = _ledger().order_for_user(current_user.id, order_id)
    return jsonify(order.to_dict())
