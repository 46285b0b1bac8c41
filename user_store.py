"""
User Store: accounts, authentication, the device session and profile edits.

Validation and duplicate failures come back as OperationResult; storage
failures are logged and reported as a failed operation.
"""
import logging
from typing import List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError

from auth import hash_password, verify_password
from models import User, DeviceSession, UserRole, utcnow
from schemas import OperationResult, UserOut, UserSession
from validation import (
    DEFAULT_ADDRESS, is_blank, normalize_email, normalize_phone, validate_email, validate_full_name,
    validate_password, validate_phone, validate_username,
)

logger = logging.getLogger(__name__)

# Password given to accounts created through the legacy username-only login
LEGACY_PASSWORD = "default"

MSG_SIGNUP_OK = "Sign-up successful!"
MSG_LOGIN_OK = "Login successful!"
MSG_DUPLICATE_USERNAME = "Username already exists"
MSG_DUPLICATE_EMAIL = "Email is already registered"
MSG_ACCOUNT_NOT_FOUND = "Account not found"
MSG_WRONG_PASSWORD = "Wrong password"
MSG_SAVE_FAILED = "Could not save account information"
MSG_READ_FAILED = "Could not read account information"


class UserStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Sign-up / login
    # ------------------------------------------------------------------

    def sign_up(self, username: str, email: str, password: str,
                full_name: str, phone: str) -> OperationResult:
        """Register a new customer and log them in on this device."""
        return self._create_customer(username, email, password, full_name, phone, log_in=True)

    def register(self, username: str, email: str, password: str,
                 full_name: str, phone: str) -> OperationResult:
        """Validate and persist a new customer without touching the device session."""
        return self._create_customer(username, email, password, full_name, phone, log_in=False)

    def _create_customer(self, username: str, email: str, password: str,
                         full_name: str, phone: str, log_in: bool) -> OperationResult:
        for check in (
            validate_username(username),
            validate_email(email),
            validate_password(password),
            validate_full_name(full_name),
            validate_phone(phone),
        ):
            if not check.valid:
                return OperationResult.fail(check.message)

        with self._session_factory() as db:
            try:
                if self._find_by_username(db, username) is not None:
                    return OperationResult.fail(MSG_DUPLICATE_USERNAME)
                if self._find_by_email(db, email) is not None:
                    return OperationResult.fail(MSG_DUPLICATE_EMAIL)

                db.add(User(
                    username=username,
                    email=normalize_email(email),
                    password_hash=hash_password(password),
                    full_name=full_name.strip(),
                    address=DEFAULT_ADDRESS,
                    phone=normalize_phone(phone),
                    created_at=utcnow(),
                    is_verified=False,
                    role=UserRole.CUSTOMER.value,
                ))
                if log_in:
                    # Committed together with the user row
                    self._stage_device_session(db, True, username)
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error saving user '%s'", username)
                return OperationResult.fail(MSG_SAVE_FAILED)

        logger.info("Registered user '%s'", username)
        return OperationResult.ok(MSG_SIGNUP_OK)

    def login(self, username_or_email: str, password: str) -> OperationResult:
        """Log in with a username or email and password."""
        result, user = self.authenticate(username_or_email, password)
        if result.success and not self._set_current_user(user.username):
            return OperationResult.fail(MSG_SAVE_FAILED)
        return result

    def authenticate(self, username_or_email: str,
                     password: str) -> Tuple[OperationResult, Optional[UserOut]]:
        """Check credentials. Exact username match wins over an email match."""
        if is_blank(username_or_email):
            return OperationResult.fail("Username or email must not be empty"), None
        if is_blank(password):
            return OperationResult.fail("Password must not be empty"), None

        with self._session_factory() as db:
            try:
                user = self._find_by_username(db, username_or_email)
                if user is None:
                    user = self._find_by_email(db, username_or_email)
            except SQLAlchemyError:
                logger.exception("Error looking up account '%s'", username_or_email)
                return OperationResult.fail(MSG_READ_FAILED), None

            if user is None:
                return OperationResult.fail(MSG_ACCOUNT_NOT_FOUND), None
            if not verify_password(password, user.password_hash):
                return OperationResult.fail(MSG_WRONG_PASSWORD), None
            return OperationResult.ok(MSG_LOGIN_OK), UserOut.model_validate(user)

    def simple_login(self, username: str) -> bool:
        """
        Legacy username-only login.

        Unknown usernames get a minimal account on the spot. Only a storage
        failure makes this return False.
        """
        if is_blank(username):
            logger.warning("Refusing legacy login with an empty username")
            return False

        with self._session_factory() as db:
            try:
                if self._find_by_username(db, username) is None:
                    db.add(User(
                        username=username,
                        email="",
                        password_hash=hash_password(LEGACY_PASSWORD),
                        full_name="",
                        address=DEFAULT_ADDRESS,
                        phone="",
                        created_at=utcnow(),
                        role=UserRole.CUSTOMER.value,
                    ))
                    db.commit()
                    logger.info("Auto-provisioned user '%s'", username)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error provisioning user '%s'", username)
                return False

        return self._set_current_user(username)

    def logout(self) -> None:
        """Clear the device session. User data is kept."""
        self._write_device_session(False, "")

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def is_logged_in(self) -> bool:
        return self.current_session().active

    def current_session(self) -> UserSession:
        """
        The persisted device session.

        A session naming a user that no longer exists is cleared and reported
        as logged out.
        """
        with self._session_factory() as db:
            try:
                row = db.get(DeviceSession, 1)
                if row is None or not row.is_logged_in or not row.current_username:
                    return UserSession.anonymous()
                username = row.current_username
                if self._find_by_username(db, username) is not None:
                    return UserSession.for_user(username)
            except SQLAlchemyError:
                logger.exception("Error reading device session")
                return UserSession.anonymous()

        logger.warning("Session user '%s' no longer exists, logging out", username)
        self.logout()
        return UserSession.anonymous()

    def get_current_user(self) -> Optional[UserOut]:
        session = self.current_session()
        if not session.active:
            return None
        return self.get_user(session.username)

    def get_user(self, username: str) -> Optional[UserOut]:
        with self._session_factory() as db:
            try:
                user = self._find_by_username(db, username)
            except SQLAlchemyError:
                logger.exception("Error loading user '%s'", username)
                return None
            return UserOut.model_validate(user) if user else None

    def is_owner(self, session: UserSession) -> bool:
        if not session.active:
            return False
        user = self.get_user(session.username)
        return user is not None and user.role == UserRole.OWNER

    def list_customers(self) -> List[UserOut]:
        with self._session_factory() as db:
            try:
                users = (
                    db.query(User)
                    .filter(User.role == UserRole.CUSTOMER.value)
                    .order_by(User.username)
                    .all()
                )
            except SQLAlchemyError:
                logger.exception("Error listing customers")
                return []
            return [UserOut.model_validate(user) for user in users]

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_user_info(self, full_name: str, address: str, phone: str,
                         session: Optional[UserSession] = None) -> bool:
        """
        Change the acting user's name, address and phone.

        Uses the device session unless one is passed in. Returns False when
        nobody is logged in or the input does not validate.
        """
        session = session or self.current_session()
        if not session.active:
            logger.warning("No user logged in, cannot update profile")
            return False
        if not validate_full_name(full_name).valid or not validate_phone(phone).valid:
            logger.warning("Rejected profile update for '%s'", session.username)
            return False

        with self._session_factory() as db:
            try:
                user = self._find_by_username(db, session.username)
                if user is None:
                    logger.warning("Profile update for unknown user '%s'", session.username)
                    return False
                user.full_name = full_name.strip()
                user.address = address.strip() if address else DEFAULT_ADDRESS
                user.phone = normalize_phone(phone)
                db.commit()
                return True
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error updating profile for '%s'", session.username)
                return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find_by_username(db, username: str) -> Optional[User]:
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def _find_by_email(db, email: str) -> Optional[User]:
        """Emails are stored normalized, so this is a plain equality match."""
        if is_blank(email):
            return None
        return (
            db.query(User)
            .filter(User.email != "", User.email == normalize_email(email))
            .first()
        )

    def _set_current_user(self, username: str) -> bool:
        return self._write_device_session(True, username)

    def _write_device_session(self, logged_in: bool, username: str) -> bool:
        with self._session_factory() as db:
            try:
                self._stage_device_session(db, logged_in, username)
                db.commit()
                return True
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Error saving device session")
                return False

    @staticmethod
    def _stage_device_session(db, logged_in: bool, username: str) -> None:
        row = db.get(DeviceSession, 1)
        if row is None:
            row = DeviceSession(id=1)
            db.add(row)
        row.is_logged_in = logged_in
        row.current_username = username
