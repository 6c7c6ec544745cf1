"""
Bearer token authentication and role checks
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import current_app, g, request
from flask_login import current_user
from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer

from storefront.errors import (
    AuthenticationError,
    DuplicateEmailError,
    ForbiddenError,
    InvalidTokenError,
    ValidationError,
)
from storefront.models import User
from storefront.models.user import ROLE_REGULAR

logger = logging.getLogger(__name__)

TOKEN_SALT = 'auth-token'


@dataclass
class TokenIdentity:
    """Identity carried by a verified bearer token"""
    user_id: int
    role: str


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({'user_id': user.id, 'email': user.email, 'role': user.role})


def verify_token(token: str) -> TokenIdentity:
    max_age = current_app.config.get('TOKEN_MAX_AGE')
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        raise InvalidTokenError('Token expired')
    except BadData:
        raise InvalidTokenError()
    if not isinstance(payload, dict) or 'user_id' not in payload:
        raise InvalidTokenError()
    return TokenIdentity(user_id=int(payload['user_id']), role=payload.get('role', ROLE_REGULAR))


def bearer_token_from_request() -> Optional[str]:
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_user_from_request(req):
    """Flask-Login request_loader: resolve the user behind a bearer token.

    Token failures are remembered on ``g`` so token_required can tell a
    missing token (401) from a bad one (403).
    """
    token = bearer_token_from_request()
    if token is None:
        return None
    try:
        identity = verify_token(token)
    except InvalidTokenError as e:
        g.auth_error = e
        return None

    from storefront import db
    user = db.session.get(User, identity.user_id)
    if user is None:
        g.auth_error = InvalidTokenError()
    return user


def token_required(f):
    """Require an authenticated bearer token on the request"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            auth_error = g.pop('auth_error', None)
            if auth_error is not None:
                raise auth_error
            raise AuthenticationError()
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Require an authenticated admin; role is read from the database, not the token"""
    @wraps(f)
    @token_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            logger.warning(f'Admin access denied for user {current_user.id}', extra={
                'event_type': 'authorization_failed',
                'user_id': current_user.id,
                'endpoint': request.endpoint
            })
            raise ForbiddenError()
        return f(*args, **kwargs)
    return decorated_function


def register_user(session, name: str, email: str, password: str, phone: Optional[str] = None) -> User:
    if not name or not email or not password:
        raise ValidationError('name, email and password are required')
    if session.query(User).filter_by(email=email).first():
        raise DuplicateEmailError()

    # Self-registration always yields a regular user
    user = User(name=name, email=email, phone=phone, role=ROLE_REGULAR)
    user.set_password(password)
    session.add(user)
    session.commit()

    logger.info(f'User registered: {user.id}', extra={
        'event_type': 'user_registered',
        'user_id': user.id
    })
    return user


def authenticate(session, email: str, password: str) -> User:
    user = session.query(User).filter_by(email=email).first()
    if user is None or not user.check_password(password or ''):
        logger.warning('Login failed', extra={'event_type': 'login_failed'})
        raise AuthenticationError('Invalid credentials')
    return user
