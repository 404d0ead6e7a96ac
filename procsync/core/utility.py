import secrets
from decimal import Decimal, InvalidOperation
from typing import Union


def generate_otp(num: int) -> str:
    """
    Random numeric one-time password of ``num`` digits.

    Raises:
        ValueError: if ``num`` is not an integer of at least 4.
    """
    if isinstance(num, bool) or not isinstance(num, int) or num < 4:
        raise ValueError(
            "The length of the OTP must be a positive integer greater than or equal to 4."
        )
    return "".join(secrets.choice("0123456789") for _ in range(num))


def format_as_money(value: Union[int, float, str, Decimal]) -> str:
    """Format a number (or numeric string) as ``1,234,567.89``."""
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(
            "Invalid input: Please provide a valid number or numeric string."
        ) from None

    if not number.is_finite():
        raise ValueError(
            "Invalid input: Please provide a valid number or numeric string."
        )
    return f"{number:,.2f}"
