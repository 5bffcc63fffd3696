# mcastevents/core/identity.py

import itertools
import os
import threading

_counter = itertools.count()
_counter_lock = threading.Lock()


def next_emitter_name() -> str:
    """
    Default debug label for an emitter: "emitter #<n>", n unique per process.
    """
    with _counter_lock:
        n = next(_counter)
    return f"emitter #{n}"


def process_origin() -> int:
    """
    Numeric identity written into origin tags.
    """
    return os.getpid()
