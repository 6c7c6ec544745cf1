from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user
from storefront import db
from storefront.routes import parse_body
from storefront.schemas import OrderStatusRequest, ProductUpdateRequest
from storefront.services.authenticator import admin_required
from storefront.services.catalog_store import CatalogStore
from storefront.services.order_ledger import OrderLedger

bp = Blueprint('admin', __name__, url_prefix='/api/admin')

def _ledger():
    return OrderLedger(db.session, config=current_app.config)

def _admin_order_dict(order, include_phone=False):
    data = order.to_dict()
    data['user_name'] = order.user.name
    data['user_email'] = order.user.email
    if include_phone:
        data['user_phone'] = order.user.phone
    return data

@bp.route('/dashboard/stats', methods=['GET'])
@admin_required
def dashboard_stats():
    return jsonify(_ledger().dashboard_stats())

@bp.route('/orders', methods=['GET'])
@admin_required
def list_orders():
    orders = _ledger().all_orders(status=request.args.get('status') or None)
    return jsonify([_admin_order_dict(order) for order in orders])

@bp.route('/orders/<int:order_id>', methods=['GET'])
@admin_required
def order_details(order_id):
    order = _ledger().order_details(order_id)
    return jsonify(_admin_order_dict(order, include_phone=True))

@bp.route('/orders/<int:order_id>/status', methods=['PUT'])
@admin_required
def update_order_status(order_id):
    data = parse_body(OrderStatusRequest)
    _ledger().update_status(order_id, data.status)

    current_app.logger.info(f'Order {order_id} status set by admin {current_user.id}', extra={
        'event_type': 'admin_order_status',
        'order_id': order_id,
        'status': data.status
    })
    return jsonify({'message': 'Order status updated successfully'})

@bp.route('/products/<int:product_id>', methods=['PUT'])
@admin_required
def update_product(product_id):
    data = parse_body(ProductUpdateRequest)
    product = CatalogStore(db.session).update_product(product_id, **data.model_dump(exclude_unset=True))
    return jsonify({'message': 'Product updated successfully', 'product': product.to_dict()})

@bp.route('/categories/<int:category_id>', methods=['DELETE'])
@admin_required
def delete_category(category_id):
    CatalogStore(db.session).delete_category(category_id)
    return jsonify({'message': 'Category deleted successfully'})
