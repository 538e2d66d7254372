"""JSON endpoints for login, registration, settings and password recovery."""

from typing import Any, Dict, Tuple
from http import HTTPStatus as status
import logging

from flask import Blueprint, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from .auth import current_auth, scoped
from .exceptions import Conflict, InvalidArgument, InvalidToken, StorageError
from .sessions import SessionManager
from . import util

logger = logging.getLogger(__name__)
blueprint = Blueprint('rms', __name__, url_prefix='/rms')

MESSAGES = {
    'login.ok': 'Login successful.',
    'login.failed': 'Invalid username or password.',
    'logout.ok': 'Logout successful.',
    'register.ok': 'User created.',
    'register.invalid-username': 'Username must be a valid e-mail address.',
    'register.password-mismatch': 'Passwords do not match.',
    'register.password-short': 'Password must be at least 6 characters'
                               ' long.',
    'register.exists': 'User already exists.',
    'register.login-failed': 'User created but could not login.',
    'google.disabled': 'Google login is not configured.',
    'google.invalid': 'Google login failed.',
    'google.ok': 'Login successful.',
    'settings.loaded': 'Settings loaded.',
    'settings.saved': 'Settings saved.',
    'settings.bad-password': 'Current password is incorrect.',
    'recover.invalid': 'The recovery link is invalid or has expired.',
    'recover.ok': 'Password changed.',
    'error': 'Unexpected error.',
}

Reply = Tuple[Response, int]


def _reply(key: str, code: int, **data: Any) -> Reply:
    body: Dict[str, Any] = {'status': code, 'message': MESSAGES[key]}
    body.update(data)
    return jsonify(body), code


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _check_new_password(password: Any, password2: Any) -> str:
    """Get the message key for an unacceptable password pair, or ''."""
    if password != password2:
        return 'register.password-mismatch'
    if not isinstance(password, str) \
            or len(password) < util.PASSWORD_MIN_LENGTH:
        return 'register.password-short'
    return ''


@blueprint.errorhandler(HTTPException)
def handle_http_exception(error: HTTPException) -> Reply:
    code = error.code or status.INTERNAL_SERVER_ERROR
    return jsonify({'status': code, 'message': error.description}), code


@blueprint.route('/user', methods=['GET'])
def user() -> Reply:
    """Public data of the current user."""
    auth: SessionManager = request.auth
    return jsonify(auth.public_user_data()), status.OK


@blueprint.route('/login', methods=['POST'])
def login() -> Reply:
    auth: SessionManager = request.auth
    data = _payload()
    username = str(data.get('username') or '').strip()
    if not auth.login(username, str(data.get('password') or '')):
        return _reply('login.failed', status.UNAUTHORIZED)
    if data.get('remember'):
        auth.remember()
    return _reply('login.ok', status.OK, user=auth.public_user_data())


@blueprint.route('/register', methods=['POST'])
def register() -> Reply:
    """Create an account and log it in."""
    auth: SessionManager = request.auth
    registry = current_auth().registry
    data = _payload()
    username = str(data.get('username') or '').strip()
    password = data.get('password')

    if not util.is_valid_email(username):
        return _reply('register.invalid-username', status.BAD_REQUEST)
    # The confirmation is optional here, unlike for password recovery.
    problem = _check_new_password(password, data.get('password2', password))
    if problem:
        return _reply(problem, status.BAD_REQUEST)

    try:
        if registry.find_user(username) is not None:
            return _reply('register.exists', status.CONFLICT)
        registry.create_user({'username': username, 'password': password},
                             auth.visit)
    except Conflict:
        return _reply('register.exists', status.CONFLICT)
    except (InvalidArgument, StorageError) as e:
        logger.error('Registration of %s failed: %s', username, e,
                     extra={'username': username})
        return _reply('error', status.INTERNAL_SERVER_ERROR)

    if not auth.login(username, password):
        return _reply('register.login-failed', status.INTERNAL_SERVER_ERROR)
    return _reply('register.ok', status.OK, user=auth.public_user_data())


@blueprint.route('/logout', methods=['POST'])
def logout() -> Reply:
    auth: SessionManager = request.auth
    auth.logout()
    return _reply('logout.ok', status.OK)


@blueprint.route('/google', methods=['GET'])
def google() -> Reply:
    """Settings the Google Sign-In button needs."""
    verifier = current_auth().verifier
    if verifier is None:
        return _reply('google.disabled', status.NOT_FOUND)
    return jsonify({'clientId': verifier.client_id}), status.OK


@blueprint.route('/google/login', methods=['POST'])
def google_login() -> Reply:
    auth: SessionManager = request.auth
    verifier = current_auth().verifier
    if verifier is None:
        return _reply('google.disabled', status.NOT_FOUND)
    token = _payload().get('jwt')
    if not token:
        return _reply('google.invalid', status.BAD_REQUEST)
    try:
        identity = verifier.verify(str(token))
    except InvalidToken as e:
        logger.warning('Google login rejected: %s', e)
        return _reply('google.invalid', status.UNAUTHORIZED)

    lang = request.accept_languages.best
    if not auth.login_with_identity(identity, lang=lang):
        return _reply('error', status.INTERNAL_SERVER_ERROR)
    return _reply('google.ok', status.OK, user=auth.public_user_data())


@blueprint.route('/settings', methods=['GET'])
@scoped()
def get_settings() -> Reply:
    auth: SessionManager = request.auth
    return _reply('settings.loaded', status.OK,
                  data={'username': auth.user.username})


@blueprint.route('/settings', methods=['POST'])
@scoped()
def set_settings() -> Reply:
    """Change the username and/or the password of the current user."""
    auth: SessionManager = request.auth
    data = _payload()
    try:
        saved = auth.change_settings(
            str(data.get('currentPassword') or ''),
            username=(data.get('username') or None),
            password=(data.get('password') or None),
            confirm=data.get('confirmPassword'),
        )
    except InvalidArgument as e:
        return jsonify({'status': status.BAD_REQUEST,
                        'message': str(e)}), status.BAD_REQUEST
    except Conflict as e:
        return jsonify({'status': status.CONFLICT,
                        'message': str(e)}), status.CONFLICT
    if not saved:
        return _reply('settings.bad-password', status.UNAUTHORIZED)
    return _reply('settings.saved', status.OK,
                  data={'username': auth.user.username})


@blueprint.route('/recover/<string:recovery_hash>', methods=['POST'])
def recover(recovery_hash: str) -> Reply:
    """Set a new password with a recovery hash sent by e-mail."""
    registry = current_auth().registry
    data = _payload()
    user = registry.find_user_by_recovery_hash(recovery_hash)
    if user is None:
        return _reply('recover.invalid', status.UNAUTHORIZED)
    problem = _check_new_password(data.get('password'), data.get('password2'))
    if problem:
        return _reply(problem, status.BAD_REQUEST)
    user.set_password(data['password'])
    user.save()
    logger.info('User %s reset the password', user, extra={'id': user.id})
    return _reply('recover.ok', status.OK)
