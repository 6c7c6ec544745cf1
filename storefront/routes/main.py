from datetime import datetime

from flask import Blueprint, current_app

bp = Blueprint('main', __name__)

@bp.route('/')
def index():
    return {
        'message': 'Storefront API server is running',
        'timestamp': datetime.utcnow().isoformat()
    }

@bp.route('/api/health')
def health():
    current_app.logger.debug('Health check endpoint called')
    return {'status': 'healthy', 'timestamp': datetime.utcnow().isoformat()}, 200
