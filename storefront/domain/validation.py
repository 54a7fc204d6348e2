# storefront/domain/validation.py
import re
from dataclasses import dataclass, field
from typing import Dict

from storefront.domain.schemas import CustomerInfo

NAME_RE = re.compile(r"^[A-Za-z\s]{2,}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
#indian mobile numbering plan
MOBILE_RE = re.compile(r"^[6-9]\d{9}$")
EMAIL_MAX_LENGTH = 254


@dataclass
class ValidationResult:
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors


def phone_digits(raw: str) -> str:
    return re.sub(r"\D", "", raw or "")


def normalize_phone(raw: str) -> str:
    """Last 10 digits of the number, country code and punctuation dropped."""
    return phone_digits(raw)[-10:]


def validate_customer(info: CustomerInfo) -> ValidationResult:
    result = ValidationResult()

    name = (info.name or "").strip()
    if not name:
        result.errors["name"] = "Name is required"
    elif len(name) < 2:
        result.errors["name"] = "Name must be at least 2 characters"
    elif not NAME_RE.match(name):
        result.errors["name"] = "Name can only contain letters and spaces"

    email = (info.email or "").strip()
    if not email:
        result.errors["email"] = "Email is required"
    elif len(email) > EMAIL_MAX_LENGTH:
        result.errors["email"] = "Email is too long"
    elif not EMAIL_RE.match(email):
        result.errors["email"] = "Please enter a valid email address"

    digits = phone_digits(info.phone)
    if not digits:
        result.errors["phone"] = "Phone number is required"
    elif len(digits) < 10:
        result.errors["phone"] = "Phone number must have at least 10 digits"
    elif len(digits) > 13:
        result.errors["phone"] = "Phone number is too long"
    elif not MOBILE_RE.match(digits[-10:]):
        result.errors["phone"] = "Please enter a valid 10-digit mobile number starting with 6, 7, 8 or 9"

    return result
