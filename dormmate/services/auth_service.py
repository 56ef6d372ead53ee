from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import threading
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dormmate.config import settings
from dormmate.core.time_provider import TimeProvider, default_time_provider
from dormmate.models import AuthAccount, Role, User


_REVOKED_TOKENS: set[str] = set()
_TOKENS_LOCK = threading.RLock()
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
PUBLIC_SIGNUP_ROLES = {Role.STUDENT.value}
SELECTABLE_ROLES = {Role.STUDENT.value, Role.SECURITY.value, Role.MESS.value}
ALL_ROLES = {role.value for role in Role}


class AuthAuthorizationError(ValueError):
    """Raised when the caller may not obtain the requested role or account."""


class InvalidCredentialsError(ValueError):
    pass


class RoleAlreadySetError(ValueError):
    pass


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def _mask_email(email: str) -> str:
    local, _, domain = normalize_email(email).partition('@')
    if not domain:
        return '***'
    return f'{local[:1]}***@{domain}'


def hash_password(password: str) -> str:
    if len(password or '') < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    salt = secrets.token_hex(16)
    iterations = 120000
    derived = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt.encode('utf-8'), iterations)
    return f'pbkdf2_sha256${iterations}${salt}${derived.hex()}'


def check_password_hash(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        algo, iter_raw, salt, digest_hex = password_hash.split('$', 3)
        if algo != 'pbkdf2_sha256':
            return False
        iterations = int(iter_raw)
    except ValueError:
        return False
    derived = hashlib.pbkdf2_hmac('sha256', (password or '').encode('utf-8'), salt.encode('utf-8'), iterations).hex()
    return hmac.compare_digest(derived, digest_hex)


def _find_account(db: Session, email: str) -> AuthAccount | None:
    return db.query(AuthAccount).filter(AuthAccount.email == normalize_email(email)).first()


def _find_user(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def verify_password(db: Session, email: str, password: str) -> bool:
    """Check a password against the stored user row.

    Users without a stored hash (rows that still need a backfill) are
    checked against their sign-in account instead.
    """
    user = _find_user(db, email)
    if user is not None and user.password_hash:
        return check_password_hash(password, user.password_hash)
    account = _find_account(db, email)
    return account is not None and check_password_hash(password, account.password_hash)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _b64url_decode(value: str) -> bytes:
    padding = '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode('ascii'))


def _encode_jwt(payload: dict) -> str:
    header = {'alg': 'HS256', 'typ': 'JWT'}
    header_part = _b64url_encode(json.dumps(header, separators=(',', ':')).encode('utf-8'))
    payload_part = _b64url_encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))
    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    signature = hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()
    return f'{header_part}.{payload_part}.{_b64url_encode(signature)}'


def _decode_jwt(token: str) -> dict | None:
    try:
        header_part, payload_part, signature_part = token.split('.')
    except ValueError:
        return None

    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    expected_signature = hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()
    try:
        provided_signature = _b64url_decode(signature_part)
    except ValueError:
        return None
    if not hmac.compare_digest(provided_signature, expected_signature):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_part).decode('utf-8'))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def dashboard_path(role: str | None) -> str | None:
    if role in ALL_ROLES:
        return f'/{role}'
    return None


def issue_session(user: User, *, time_provider: TimeProvider = default_time_provider) -> dict:
    now = time_provider.now()
    expires_at = now + timedelta(hours=settings.auth_session_expiry_hours)
    role = user.role or ''
    token = _encode_jwt(
        {
            'sub': user.id,
            'email': user.email,
            'role': role,
            'iat': int(now.timestamp()),
            'exp': int(expires_at.timestamp()),
        }
    )
    with _TOKENS_LOCK:
        _REVOKED_TOKENS.discard(token)
    return {
        'token': token,
        'user_id': user.id,
        'email': user.email,
        'role': role or None,
        'next': dashboard_path(role) or '/',
        'expires_at': expires_at.isoformat(),
    }


def validate_session_token(token: str | None, *, time_provider: TimeProvider = default_time_provider) -> dict | None:
    if not token:
        return None
    with _TOKENS_LOCK:
        if token in _REVOKED_TOKENS:
            return None

    payload = _decode_jwt(token)
    if not payload:
        return None

    user_id = payload.get('sub')
    email = payload.get('email')
    expires_at = int(payload.get('exp') or 0)
    if user_id is None or not email:
        return None
    if expires_at and expires_at <= int(time_provider.now().timestamp()):
        return None

    return {
        'user_id': int(user_id),
        'email': email,
        'role': payload.get('role') or None,
        'expires_at': expires_at,
    }


def clear_session_token(token: str | None) -> None:
    if not token:
        return
    with _TOKENS_LOCK:
        _REVOKED_TOKENS.add(token)


def create_account(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str = '',
    role: str | None = Role.STUDENT.value,
) -> User:
    """Create the sign-in account and its ``users`` row in one transaction."""
    clean_email = normalize_email(email)
    if role is not None and role not in ALL_ROLES:
        raise ValueError(f'Unknown role: {role}')
    if _find_account(db, clean_email) is not None:
        raise ValueError('User already registered')

    password_hash = hash_password(password)
    account = AuthAccount(
        email=clean_email,
        password_hash=password_hash,
        full_name=(full_name or '').strip(),
        requested_role=role or '',
    )
    db.add(account)
    try:
        db.flush()
        user = User(
            id=account.id,
            email=clean_email,
            full_name=(full_name or '').strip() or None,
            role=role,
            password_hash=password_hash,
        )
        db.add(user)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError('User already registered') from exc
    db.refresh(user)
    logger.info('auth_account_created email=%s role=%s', _mask_email(clean_email), role)
    return user


def signup(db: Session, *, email: str, password: str, full_name: str, role: str | None = Role.STUDENT.value) -> dict:
    if role is not None and role not in PUBLIC_SIGNUP_ROLES:
        logger.warning('auth_signup_role_denied email=%s role=%s', _mask_email(email), role)
        raise AuthAuthorizationError('This role cannot be chosen at signup.')
    user = create_account(db, email=email, password=password, full_name=full_name, role=role)
    return {'ok': True, 'user_id': user.id, 'email': user.email, 'role': user.role}


def _ensure_user_row(db: Session, account: AuthAccount, password: str) -> User:
    user = db.get(User, account.id) or _find_user(db, account.email)
    if user is not None:
        return user
    user = User(
        id=account.id,
        email=account.email,
        full_name=account.full_name or None,
        password_hash=hash_password(password),
        role=Role.STUDENT.value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Another sign-in backfilled the same row first.
        db.rollback()
        existing = db.get(User, account.id)
        if existing is None:
            raise
        return existing
    db.refresh(user)
    logger.warning('auth_user_row_backfilled email=%s', _mask_email(account.email))
    return user


def login(db: Session, email: str, password: str, *, time_provider: TimeProvider = default_time_provider) -> dict:
    if not verify_password(db, email, password):
        logger.info('auth_login_rejected email=%s', _mask_email(email))
        raise InvalidCredentialsError('Invalid credentials')

    account = _find_account(db, email)
    if account is None or not check_password_hash(password, account.password_hash):
        raise InvalidCredentialsError('Invalid login credentials')
    account.last_sign_in_at = time_provider.naive_now()
    db.commit()

    user = _ensure_user_row(db, account, password)
    logger.info('auth_login_ok user_id=%s role=%s', user.id, user.role)
    return issue_session(user, time_provider=time_provider)


def select_role(db: Session, user_id: int, role: str, *, time_provider: TimeProvider = default_time_provider) -> dict:
    if role not in SELECTABLE_ROLES:
        raise AuthAuthorizationError('This role cannot be self-assigned.')
    user = db.get(User, int(user_id))
    if user is None:
        raise ValueError('User not found')
    if user.role:
        raise RoleAlreadySetError('Role already selected')
    user.role = role
    db.commit()
    db.refresh(user)
    logger.info('auth_role_selected user_id=%s role=%s', user.id, role)
    return issue_session(user, time_provider=time_provider)


def current_role(db: Session, session: dict) -> str | None:
    user = db.get(User, int(session['user_id']))
    if user is None:
        return None
    return user.role or None


def resolve_landing(db: Session, session: dict | None) -> dict:
    if not session:
        return {'view': 'landing', 'redirect': None}
    role = current_role(db, session)
    path = dashboard_path(role)
    if path is None:
        return {'view': 'role_selection', 'redirect': None, 'roles': sorted(SELECTABLE_ROLES)}
    return {'view': 'dashboard', 'redirect': path, 'role': role}


def ensure_admin_account(db: Session) -> dict:
    account = _find_account(db, settings.auth_admin_email)
    if account is not None:
        user = db.get(User, account.id)
        if user is None:
            db.add(
                User(
                    id=account.id,
                    email=account.email,
                    full_name=account.full_name or None,
                    role=Role.ADMIN.value,
                    password_hash=account.password_hash,
                )
            )
            db.commit()
            return {'ensured': True, 'created': False, 'updated': True}
        if user.role != Role.ADMIN.value:
            user.role = Role.ADMIN.value
            db.commit()
            logger.warning('auth_admin_role_restored email=%s', _mask_email(account.email))
            return {'ensured': True, 'created': False, 'updated': True}
        return {'ensured': True, 'created': False, 'updated': False}
    create_account(
        db,
        email=settings.auth_admin_email,
        password=settings.auth_admin_password,
        full_name='Administrator',
        role=Role.ADMIN.value,
    )
    logger.warning('Default admin account created - change its password after setup')
    return {'ensured': True, 'created': True, 'updated': False}
