"""
Input validation for sign-up, profile and checkout data.

Every validator returns a ValidationResult instead of raising, so callers can
hand the message straight back to the user.
"""
import re
from typing import NamedTuple, Optional
from email_validator import validate_email as _check_email, EmailNotValidError

# Placeholder address given to new accounts until the user enters a real one
DEFAULT_ADDRESS = "Nhập địa chỉ giao hàng"

MIN_PASSWORD_LENGTH = 6
MIN_ADDRESS_LENGTH = 10
MAX_QUANTITY = 99

_PHONE_PATTERN = re.compile(r"^0[0-9]{9,10}$")
_PHONE_SEPARATORS = re.compile(r"[\s-]")


class ValidationResult(NamedTuple):
    valid: bool
    message: str = ""


VALID = ValidationResult(True, "Valid")


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_username(username: Optional[str]) -> ValidationResult:
    if is_blank(username):
        return ValidationResult(False, "Username must not be empty")
    return VALID


def validate_email(email: Optional[str]) -> ValidationResult:
    """Check the address syntax only; deliverability is never looked up."""
    if is_blank(email):
        return ValidationResult(False, "Email must not be empty")
    try:
        _check_email(email, check_deliverability=False)
    except EmailNotValidError:
        return ValidationResult(False, "Invalid email format")
    return VALID


def validate_password(password: Optional[str]) -> ValidationResult:
    if not password:
        return ValidationResult(False, "Password must not be empty")
    if len(password) < MIN_PASSWORD_LENGTH:
        return ValidationResult(
            False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    has_letter = any(c.isalpha() for c in password)
    has_digit = any(c.isdigit() for c in password)
    if not (has_letter and has_digit):
        return ValidationResult(False, "Password must contain both letters and digits")
    return VALID


def normalize_email(email: str) -> str:
    """Trimmed and case-folded with str.lower, so non-ASCII letters match too."""
    return (email or "").strip().lower()


def normalize_phone(phone: str) -> str:
    """Strip the spaces and dashes people type into phone numbers."""
    return _PHONE_SEPARATORS.sub("", phone or "")


def validate_phone(phone: Optional[str]) -> ValidationResult:
    """National format: 10 or 11 digits starting with a leading zero."""
    if is_blank(phone):
        return ValidationResult(False, "Phone number must not be empty")
    if not _PHONE_PATTERN.match(normalize_phone(phone)):
        return ValidationResult(False, "Invalid phone number format (e.g. 0123456789)")
    return VALID


def validate_full_name(full_name: Optional[str]) -> ValidationResult:
    if is_blank(full_name):
        return ValidationResult(False, "Full name must not be empty")
    return VALID


def validate_address(address: Optional[str]) -> ValidationResult:
    if is_blank(address):
        return ValidationResult(False, "Delivery address must not be empty")
    if address.strip() == DEFAULT_ADDRESS:
        return ValidationResult(False, "Please enter a real delivery address")
    if len(address.strip()) < MIN_ADDRESS_LENGTH:
        return ValidationResult(
            False, f"Delivery address is too short (at least {MIN_ADDRESS_LENGTH} characters)"
        )
    return VALID


def validate_quantity(quantity: int) -> ValidationResult:
    if quantity <= 0:
        return ValidationResult(False, "Quantity must be greater than 0")
    if quantity > MAX_QUANTITY:
        return ValidationResult(False, f"Quantity must not exceed {MAX_QUANTITY}")
    return VALID
