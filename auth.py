"""
Session login and role based access control for the API.
"""
import logging
from datetime import datetime
from functools import wraps

import bcrypt
from flask import Blueprint, jsonify, request, session
from flask_wtf.csrf import generate_csrf

from exceptions import AuthenticationError, PermissionDenied
from forms import LoginForm
from models import UserAccount, db

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

# role -> {resource: action}; 'manage' grants every action on the resource
ROLE_PERMISSIONS = {
    'admin': {
        'students': 'manage',
        'teachers': 'manage',
        'guardians': 'manage',
        'classes': 'manage',
        'programs': 'manage',
        'academic_years': 'manage',
        'enrollments': 'manage',
        'rooms': 'manage',
        'accounts': 'manage',
        'attendance': 'manage',
        'grades': 'manage',
        'reports': 'manage',
        'settings': 'manage',
        'dashboard': 'manage',
        'communications': 'manage',
        'notifications': 'manage',
    },
    'secretariat': {
        'students': 'manage',
        'guardians': 'manage',
        'teachers': 'read',
        'classes': 'read',
        'programs': 'read',
        'academic_years': 'read',
        'enrollments': 'manage',
        'rooms': 'read',
        'accounts': 'read',
        'attendance': 'read',
        'reports': 'read',
        'dashboard': 'read',
        'communications': 'manage',
        'notifications': 'read',
    },
    'teacher': {
        'students': 'read',
        'classes': 'read',
        'guardians': 'read',
        'programs': 'read',
        'attendance': 'manage',
        'grades': 'manage',
        'reports': 'manage',
        'dashboard': 'read',
        'notifications': 'read',
    },
    'guardian': {
        'students': 'read',
        'attendance': 'read',
        'grades': 'read',
        'dashboard': 'read',
        'notifications': 'read',
    },
    'student': {
        'attendance': 'read',
        'grades': 'read',
        'dashboard': 'read',
        'notifications': 'read',
    },
}


def hash_password(password):
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def check_password(password, password_hash):
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Not a bcrypt hash
        return False


def has_permission(role, resource, action):
    granted = ROLE_PERMISSIONS.get(role, {}).get(resource)
    return granted is not None and (granted == 'manage' or granted == action)


def current_account():
    """The logged-in UserAccount for this request, or None"""
    account_id = session.get('account_id')
    if account_id is None:
        return None
    account = db.session.get(UserAccount, account_id)
    if account is None or not account.is_active:
        return None
    return account


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_account() is None:
            raise AuthenticationError('Niet ingelogd')
        return f(*args, **kwargs)
    return decorated_function


def permission_required(resource, action):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            account = current_account()
            if account is None:
                raise AuthenticationError('Niet ingelogd')
            if not has_permission(account.role, resource, action):
                logger.warning("Denied %s on %s for account %s (%s)", action, resource, account.id, account.role)
                raise PermissionDenied('Onvoldoende rechten voor deze actie')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def session_user(account):
    data = account.to_dict()
    data['name'] = account.display_name()
    return data


@auth_bp.route('/login', methods=['POST'])
def login():
    payload = request.get_json(silent=True) or {}
    LoginForm.from_payload(payload).validate_or_raise()

    email = str(payload['email']).strip().lower()
    account = UserAccount.query.filter(db.func.lower(UserAccount.email) == email).first()
    if account is None or not check_password(str(payload['password']), account.password_hash):
        logger.warning("Failed login for %s", email)
        raise AuthenticationError('Ongeldige inloggegevens')
    if not account.is_active:
        raise PermissionDenied('Account is gedeactiveerd')

    account.last_login = datetime.utcnow()
    db.session.commit()

    session.clear()
    session['account_id'] = account.id
    session['user_role'] = account.role
    session.permanent = True
    logger.info("Account %s logged in as %s", account.id, account.role)
    return jsonify({'message': 'Succesvol ingelogd', 'user': session_user(account)})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'message': 'Succesvol uitgelogd'})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'user': session_user(current_account())})


@auth_bp.route('/csrf-token')
def csrf_token():
    return jsonify({'csrfToken': generate_csrf()})
