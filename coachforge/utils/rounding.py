"""Half-up rounding for reported figures.

Python's round() rounds halves to even; reported adherence, RPE and load
figures round halves away from zero for positive values instead.
"""

import math


def round_half_up(value: float, digits: int = 0) -> float:
    """Round to the given number of decimal places, halves rounding up.

    Args:
        value: Number to round
        digits: Decimal places to keep

    Returns:
        Rounded value (an int-valued float when digits is 0)
    """
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor
