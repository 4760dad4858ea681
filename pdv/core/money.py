from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
EPSILON = Decimal("0.01")


def to_decimal(v) -> Decimal:
    if isinstance(v, Decimal):
        return v
    if v is None:
        return ZERO
    return Decimal(str(v))


def money(v) -> Decimal:
    return to_decimal(v).quantize(CENT, rounding=ROUND_HALF_UP)


def qty(v) -> Decimal:
    return to_decimal(v).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)


def floor_points(v) -> int:
    return int(to_decimal(v).to_integral_value(rounding=ROUND_DOWN))


def same_amount(a, b) -> bool:
    return abs(money(a) - money(b)) < EPSILON
