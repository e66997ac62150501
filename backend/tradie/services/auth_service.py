# Overview: Passwordless sign-in codes and account provisioning.

"""
Authentication Service

ONE-TIME CODES (passwordless email sign-in):

    issued --verify--> verified --> consumed (row deleted)
    issued --time----> expired  --> deleted by verify or sweep_expired()
    issued --request-> superseded (row deleted when a new code is requested)

The verify step is the only strictly serialized operation. It claims the
code with ONE conditional statement:

    UPDATE login_codes SET verified = true
     WHERE email = :email AND code = :code AND verified = false

and branches on the affected row count. Exactly one concurrent verifier can
see rowcount == 1; everyone else sees 0 and fails with
InvalidOrAlreadyUsedCode. A separate "read verified, then write verified"
would let two requests consume the same code.

Account lookup/creation happens after the claim, inside the same
transaction, so concurrent sign-ins for one email are serialized on the
code row. Email uniqueness is still backstopped by uq_accounts_email for
explicit creation racing a sign-in; that conflict rolls the whole
transaction back (including the claim) and the verify is retried.

PASSWORDS (optional, explicit accounts only):
- Hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit, special char
"""

import re
import secrets
import string
from datetime import timedelta

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Account, OneTimeCode
from ..validation import ValidationError, ConflictError
from tradie.time_utils import utcnow, has_expired
from . import login_throttle_service
from .concurrency import conditional_update, run_with_retry, INSERT_RACE_ERRORS
from .security_service import log_security_event, mask_email


DEFAULT_CODE_TTL = timedelta(minutes=10)
CODE_LENGTH = 6

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class OneTimeCodeError(Exception):
    """Base class for expected, user-recoverable sign-in failures."""
    pass


class InvalidOrAlreadyUsedCode(OneTimeCodeError):
    """Wrong code, already consumed by a concurrent request, or none issued."""
    pass


class CodeExpired(OneTimeCodeError):
    """The code matched but its expiry has passed; the row has been removed."""
    pass


class CodeThrottled(OneTimeCodeError):
    """Too many failed verifications for this email."""
    def __init__(self, seconds_remaining: int | None):
        super().__init__("Too many failed attempts. Request a new code later.")
        self.seconds_remaining = seconds_remaining


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def normalize_email(email: str) -> str:
    if not isinstance(email, str):
        raise ValidationError("email is required")
    normalized = email.strip().lower()
    if not normalized or not _EMAIL_RE.match(normalized):
        raise ValidationError("Invalid email address")
    if len(normalized) > 255:
        raise ValidationError("email exceeds max length 255")
    return normalized


def _code_ttl() -> timedelta:
    minutes = current_app.config.get("LOGIN_CODE_TTL_MINUTES")
    return timedelta(minutes=minutes) if minutes else DEFAULT_CODE_TTL


def generate_code(length: int = CODE_LENGTH) -> str:
    """Numeric code without a leading zero (reads cleanly in an SMS)."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


# =============================================================================
# One-time codes
# =============================================================================

def request_code(email: str) -> str:
    """
    Issue a fresh code for an email, superseding any earlier one.

    Returns the plaintext code; delivering it (email/SMS) is the caller's job.
    """
    normalized = normalize_email(email)

    def _op() -> str:
        db.session.query(OneTimeCode).filter(
            OneTimeCode.email == normalized
        ).delete(synchronize_session=False)

        code = generate_code(current_app.config.get("LOGIN_CODE_LENGTH", CODE_LENGTH))
        db.session.add(OneTimeCode(
            email=normalized,
            code=code,
            expires_at=utcnow() + _code_ttl(),
            verified=False,
        ))
        db.session.commit()
        return code

    # Two concurrent requests collide on uq_login_codes_email; the retry
    # deletes the winner's row and supersedes it.
    return run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)


def _derive_username(email: str) -> str:
    local = re.sub(r"[^a-z0-9._-]", "", email.split("@", 1)[0])[:40] or "user"
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(5))
    return f"{local}_{suffix}"


def _claim_code(email: str, code: str) -> bool:
    claimed = conditional_update(
        OneTimeCode,
        (OneTimeCode.email == email, OneTimeCode.code == code, OneTimeCode.verified.is_(False)),
        {"verified": True},
    )
    return claimed == 1


def verify_and_resolve_account(
    email: str,
    code: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Account:
    """
    Consume a code and return the account for the email, creating it on
    first sign-in.

    Raises:
        ValidationError: malformed email
        CodeThrottled: too many recent failures for this email
        InvalidOrAlreadyUsedCode: wrong, reused or nonexistent code
        CodeExpired: code matched but expired (row removed)
    """
    normalized = normalize_email(email)
    code = (code or "").strip()

    is_locked, seconds_remaining = login_throttle_service.is_email_locked(normalized)
    if is_locked:
        raise CodeThrottled(seconds_remaining)

    def _op() -> Account:
        if not code or not _claim_code(normalized, code):
            db.session.rollback()
            raise InvalidOrAlreadyUsedCode("Invalid or already used code")

        login_code = db.session.query(OneTimeCode).filter_by(
            email=normalized, code=code
        ).one()

        now = utcnow()
        if has_expired(login_code.expires_at, now):
            db.session.delete(login_code)
            db.session.commit()
            raise CodeExpired("Code has expired")

        account = db.session.query(Account).filter(Account.email == normalized).first()
        if account is None:
            account = Account(
                email=normalized,
                username=_derive_username(normalized),
                email_verified=True,
            )
            db.session.add(account)
        else:
            account.email_verified = True
        account.last_login_at = now

        db.session.delete(login_code)
        db.session.commit()
        return account

    try:
        account = run_with_retry(_op, retry_on=INSERT_RACE_ERRORS)
    except InvalidOrAlreadyUsedCode as exc:
        _record_failure(normalized, "LOGIN_CODE_FAILED", str(exc), ip_address, user_agent)
        raise
    except CodeExpired as exc:
        _record_failure(normalized, "LOGIN_CODE_EXPIRED", str(exc), ip_address, user_agent)
        raise

    log_security_event(
        account_id=account.id,
        event_type="LOGIN_SUCCESS",
        success=True,
        resource="login_code",
        action=normalized,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    current_app.logger.info("Account %s signed in with a login code", account.id)
    return account


def _record_failure(email, event_type, reason, ip_address, user_agent) -> None:
    log_security_event(
        account_id=None,
        event_type=event_type,
        success=False,
        resource="login_code",
        action=email,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    current_app.logger.info("Login code rejected for %s: %s", mask_email(email), reason)


def sweep_expired() -> int:
    """
    Delete every code whose expiry has passed. Idempotent and safe to run
    concurrently with sign-ins.

    Returns count of rows deleted.
    """
    deleted = db.session.query(OneTimeCode).filter(
        OneTimeCode.expires_at < utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


# =============================================================================
# Accounts & passwords
# =============================================================================

def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt check; passwordless accounts never match."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_account(email: str, username: str | None = None, password: str | None = None) -> Account:
    """
    Explicitly provision an account.

    Raises:
        ValidationError: malformed email
        PasswordValidationError: weak password
        ConflictError: email (case-insensitive) or username already taken
    """
    normalized = normalize_email(email)
    password_hash = hash_password(password) if password else None

    existing = db.session.query(Account).filter(Account.email == normalized).first()
    if existing:
        raise ConflictError("An account with this email already exists")

    account = Account(
        email=normalized,
        username=username or _derive_username(normalized),
        password_hash=password_hash,
        email_verified=False,
    )
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent sign-in or creation for the same address
        db.session.rollback()
        raise ConflictError("Email or username already exists")
    return account


def authenticate(email: str, password: str) -> Account | None:
    """
    Password sign-in. Returns the Account if credentials are valid, None otherwise.
    Updates last_login_at on success.
    """
    try:
        normalized = normalize_email(email)
    except ValidationError:
        return None

    account = db.session.query(Account).filter(
        Account.email == normalized,
        Account.is_active.is_(True),
    ).first()
    if not account:
        return None

    if verify_password(password, account.password_hash):
        account.last_login_at = utcnow()
        db.session.commit()
        return account

    return None
