"""
Money Module

Single-currency monetary amounts with Decimal precision. NEVER uses float
for monetary values; amounts are quantized to two decimal places.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

PRECISION = 2
QUANTUM = Decimal('0.1') ** PRECISION

# Largest magnitude accepted from user input
MAX_AMOUNT = Decimal('999999999999.99')


@dataclass(frozen=True)
class Money:
    """
    Immutable money amount rounded to two decimal places.
    May be negative; non-negativity is a transfer precondition, not a type rule.
    """
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(QUANTUM, rounding=ROUND_HALF_UP)
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal('0'))

    @classmethod
    def parse(cls, value: Union[str, int, float, Decimal, None], field: str = "amount") -> 'Money':
        """Build Money from user input, raising ValidationError on garbage"""
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} is required")
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be a number")
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
        if not amount.is_finite():
            raise ValidationError(f"{field} must be a finite number")
        if abs(amount) > MAX_AMOUNT:
            raise ValidationError(f"{field} is out of range")
        return cls(amount)

    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + other.amount)

    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - other.amount)

    def __neg__(self) -> 'Money':
        return Money(-self.amount)

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Storage and wire representation, e.g. '1200.00'"""
        return str(self.amount)
