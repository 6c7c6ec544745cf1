from flask import Blueprint, current_app, jsonify
from storefront import db
from storefront.routes import parse_body
from storefront.schemas import LoginRequest, RegisterRequest
from storefront.services.authenticator import authenticate, issue_token, register_user

bp = Blueprint('auth', __name__, url_prefix='/api/auth')

@bp.route('/register', methods=['POST'])
def register():
    data = parse_body(RegisterRequest)
    user = register_user(db.session, data.name, data.email, data.password, data.phone)

    return jsonify({
        'message': 'User registered successfully',
        'token': issue_token(user),
        'user': user.to_dict()
    }), 201

@bp.route('/login', methods=['POST'])
def login():
    data = parse_body(LoginRequest)
    user = authenticate(db.session, data.email, data.password)

    current_app.logger.info(f'Login successful for user: {user.id}', extra={
        'event_type': 'login_success',
        'user_id': user.id
    })

    return jsonify({
        'message': 'Login successful',
        'token': issue_token(user),
        'user': user.to_dict()
    })
