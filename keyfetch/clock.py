"""
Wall clock in epoch milliseconds.
"""

import time
from typing import Callable

Clock = Callable[[], int]


def current_time_millis() -> int:
    return int(time.time() * 1000)
