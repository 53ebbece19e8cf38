# validation.py
"""
Declarative field validators shared by the API routes.

Each factory returns a callable ``value -> str`` that yields an error
message, or an empty string when the value is acceptable. Apart from
``required``, every validator lets empty values through so optional fields
can be composed freely:

    errors = validate_form(payload, FORM_VALIDATORS["supplier"])
"""
import re

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[0-9]{10,15}$")
NIC_RE = re.compile(r"^(\d{9}[vVxX]|\d{12})$")
BANK_ACCOUNT_RE = re.compile(r"^\d{6,20}$")


class ValidationError(Exception):
    def __init__(self, errors, message="Validation failed"):
        super().__init__(message)
        self.message = message
        self.errors = errors


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _to_number(value):
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def required(message="This field is required"):
    return lambda value: message if _is_empty(value) else ""


def email(message="Please enter a valid email address"):
    def check(value):
        if _is_empty(value):
            return ""
        return "" if EMAIL_RE.match(str(value)) else message
    return check


def phone(message="Please enter a valid phone number"):
    def check(value):
        if _is_empty(value):
            return ""
        return "" if PHONE_RE.match(str(value)) else message
    return check


def min_length(minimum, message=None):
    def check(value):
        if _is_empty(value):
            return ""
        if len(str(value)) < minimum:
            return message or f"Must be at least {minimum} characters"
        return ""
    return check


def max_length(maximum, message=None):
    def check(value):
        if _is_empty(value):
            return ""
        if len(str(value)) > maximum:
            return message or f"Must be no more than {maximum} characters"
        return ""
    return check


def numeric(message="Must be a valid number"):
    def check(value):
        if _is_empty(value):
            return ""
        num = _to_number(value)
        return message if num is None or num <= 0 else ""
    return check


def positive_number(message="Must be a positive number"):
    return numeric(message)


def nic_number(message="Please enter a valid NIC number"):
    def check(value):
        if _is_empty(value):
            return ""
        return "" if NIC_RE.match(str(value)) else message
    return check


def bank_account(message="Bank account must be 6-20 digits"):
    def check(value):
        if _is_empty(value):
            return ""
        return "" if BANK_ACCOUNT_RE.match(str(value)) else message
    return check


def password(message="Password must be at least 6 characters", minimum=6):
    def check(value):
        if _is_empty(value):
            return ""
        return message if len(str(value)) < minimum else ""
    return check


def confirm_password(original, message="Passwords do not match"):
    def check(value):
        if _is_empty(value):
            return ""
        return message if value != original else ""
    return check


def one_of(choices, message=None):
    def check(value):
        if _is_empty(value):
            return ""
        if value not in choices:
            return message or f"Must be one of: {', '.join(choices)}"
        return ""
    return check


FORM_VALIDATORS = {
    "user": {
        "name": [required("Name is required"), min_length(2, "Name must be at least 2 characters")],
        "email": [required("Email is required"), email()],
        "phone": [phone()],
        "password": [required("Password is required"), password()],
        "role": [
            required("Role is required"),
            one_of(("admin", "manager", "staff", "supplier"), "Invalid role"),
        ],
    },
    "supplier": {
        "name": [required("Name is required"), min_length(2, "Name must be at least 2 characters")],
        "contact_number": [required("Contact number is required"), phone()],
        "nic_number": [required("NIC number is required"), nic_number()],
        "address": [
            required("Address is required"),
            min_length(10, "Address must be at least 10 characters"),
        ],
        "bank_account_number": [
            required("Bank account number is required"),
            bank_account(),
        ],
        "bank_name": [required("Bank name is required")],
        "rate": [required("Rate is required"), positive_number("Rate must be a positive number")],
        "email": [email()],
        "payment_preferences": [one_of(("cash", "bank_transfer", "check"))],
    },
    "delivery": {
        "supplier_id": [required("Supplier is required")],
        "quantity": [
            required("Quantity is required"),
            positive_number("Quantity must be greater than 0"),
        ],
        "rate_per_kg": [positive_number("Rate must be greater than 0")],
        "delivery_date": [required("Delivery date is required")],
        "payment_method": [one_of(("monthly", "spot"))],
    },
    "inventory": {
        "inventoryid": [required("Inventory ID is required")],
        "quantity": [
            required("Quantity is required"),
            numeric("Quantity must be a valid number"),
        ],
    },
    "payment": {
        "supplier_id": [required("Supplier is required")],
        "amount": [required("Amount is required"), positive_number("Amount must be greater than 0")],
        "payment_date": [required("Payment date is required")],
        "payment_method": [required("Payment method is required")],
        "payment_type": [one_of(("monthly", "spot-cash"))],
    },
}


def validate_form(data, validators) -> dict:
    """Return ``{field: message}`` for every field with a failing validator.

    Only the first failing validator of a field is reported.
    """
    errors = {}
    for field, field_validators in validators.items():
        value = data.get(field) if data else None
        for validator in field_validators:
            error = validator(value)
            if error:
                errors[field] = error
                break
    return errors


def validate_partial(data, validators) -> dict:
    """Like ``validate_form`` but only for fields present in ``data`` (updates)."""
    present = {k: v for k, v in validators.items() if k in (data or {})}
    return validate_form(data, present)


def ensure_valid(data, validators, partial=False) -> None:
    errors = validate_partial(data, validators) if partial else validate_form(data, validators)
    if errors:
        raise ValidationError(errors)
