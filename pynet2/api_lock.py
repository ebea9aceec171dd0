import logging
import random
import threading
import time
from typing import Union

log = logging.getLogger(__name__)

SiteLock = Union[threading.Lock, threading.RLock]


def acquire_with_exponential_backoff(
    lock: SiteLock,
    timeout: float,
    initial_delay: float = 0.05,
    factor: int = 2,
    max_delay: float = 1,
    jitter: float = 0.05
) -> bool:
    """
    Attempts to acquire a site lock using exponential backoff with jitter.

    User commands share the per-site lock with the refresh cycle. Rather than block
    behind a slow refresh indefinitely, a command polls the lock without blocking and
    sleeps for an exponentially growing delay (plus jitter) between attempts, giving
    up once the total elapsed time exceeds the timeout.

    Args:
        lock (threading.Lock | threading.RLock): The lock instance to acquire.
        timeout (float): The total time (in seconds) to keep trying to acquire the lock.
        initial_delay (float, optional): Delay (in seconds) after the first failed attempt. Defaults to 0.05.
        factor (int, optional): Multiplier for the delay after each failed attempt. Defaults to 2.
        max_delay (float, optional): Maximum delay (in seconds) between attempts. Defaults to 1.
        jitter (float, optional): Maximum random delay (in seconds) added to each sleep. Defaults to 0.05.

    Returns:
        bool: True if the lock was acquired within the timeout period, otherwise False.
    """
    start_time = time.perf_counter()
    delay = initial_delay

    elapsed = 0.0
    while True:
        if lock.acquire(blocking=False):
            return True
        if elapsed >= timeout:
            return False
        remaining_time = timeout - elapsed
        sleep_time = min(delay, remaining_time) + random.uniform(0, jitter)
        log.debug(f"Site lock busy - retrying in {sleep_time:.2f}s")
        time.sleep(sleep_time)
        delay = min(delay * factor, max_delay)
        elapsed = time.perf_counter() - start_time
