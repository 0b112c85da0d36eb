"""Epoch time helpers"""

import time


def now_epoch_seconds() -> int:
    return int(time.time())


def now_ms() -> int:
    return int(time.time() * 1000)
