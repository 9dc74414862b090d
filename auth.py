# sign-in, sign-out and the login session for staff
# the browser only holds a session token; the role always comes from the users table

import logging
import secrets
from datetime import datetime
from functools import wraps

from flask import abort
from flask_login import LoginManager, current_user
from sqlalchemy.exc import SQLAlchemyError

from errors import AuthError, InvalidCredentials
from models import AuthSession, User, db

logger = logging.getLogger(__name__)

login_manager = LoginManager()
login_manager.login_view = 'main.login'
login_manager.login_message = 'Please log in first.'
login_manager.login_message_category = 'warning'


def create_user(email, password, role='manager'):
    user = User(email=email.strip().lower(), role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def sign_in(email, password):
    # returns the user with session_token set; wrong credentials raise
    # InvalidCredentials, a database failure the plain AuthError
    email = (email or '').strip().lower()
    # passwords are checked exactly as stored, spaces included
    password = password or ''
    try:
        user = User.query.filter_by(email=email).first()
        if user is None or not user.check_password(password):
            logger.warning('failed sign-in for %s', email)
            raise InvalidCredentials()
        token = secrets.token_hex(32)
        db.session.add(AuthSession(token=token, user_id=user.id))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception('sign-in failed for %s', email)
        raise AuthError() from exc
    user.session_token = token
    logger.info('%s signed in as %s', user.email, user.role)
    return user


def sign_out(token):
    if not token:
        return
    try:
        session = db.session.get(AuthSession, token)
        if session is not None and session.is_active:
            session.revoked_at = datetime.now()
            db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception('sign-out failed')
        raise AuthError('Logout failed.') from exc


@login_manager.user_loader
def lookup_token(token):
    # runs on every request; returning None logs the browser out
    try:
        session = db.session.get(AuthSession, token)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception('token lookup failed')
        return None
    if session is None or not session.is_active:
        return None
    user = session.user
    user.session_token = token
    return user


def can_open(user, role):
    # admins may also look at the manager summary
    if role == 'manager':
        return user.role in ('manager', 'admin')
    return user.role == role


def role_required(*roles):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if current_user.role not in roles:
                logger.warning('%s (%s) refused access to %s',
                               current_user.email, current_user.role, view.__name__)
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator
