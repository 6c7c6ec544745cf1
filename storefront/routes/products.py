from flask import Blueprint, jsonify, request, current_app
from storefront import db
from storefront.errors import ProductNotFoundError
from storefront.services.catalog_store import CatalogStore

bp = Blueprint('products', __name__, url_prefix='/api')

@bp.route('/products')
def list_products():
    category_id = request.args.get('category', type=int)
    search = request.args.get('search')
    featured = request.args.get('featured')
    featured = None if featured is None else featured.lower() in ('1', 'true', 'yes')

    current_app.logger.info('Products list requested', extra={
        'event_type': 'page_view',
        'page': 'products_list',
        'category': category_id or 'all'
    })

    products = CatalogStore(db.session).list_products(
        category_id=category_id, featured=featured, search=search
    )
    return jsonify([product.to_dict() for product in products])

@bp.route('/products/<int:product_id>')
def product_detail(product_id):
    product = CatalogStore(db.session).get_product(product_id)
    if product is None:
        raise ProductNotFoundError()

    current_app.logger.info(f'Product found: {product.name}', extra={
        'event_type': 'product_viewed',
        'product_id': product.id,
        'stock': product.stock_quantity
    })
    return jsonify(product.to_dict())

@bp.route('/categories')
def list_categories():
    categories = CatalogStore(db.session).list_categories()
    return jsonify([category.to_dict() for category in categories])
