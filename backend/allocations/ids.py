"""
Chain id generators.

A generator is any callable taking a level prefix (``ROOT``, ``RM``, ``BM``,
``MGR``) and returning a fresh id string. The project default is configured by
``settings.ALLOCATION_ID_GENERATOR``; services accept an explicit generator so
tests can stay deterministic.
"""
import functools
import itertools
import string
import time
import uuid

from django.conf import settings
from django.utils.module_loading import import_string

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value):
    if value == 0:
        return '0'
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return ''.join(reversed(digits))


class ChainIdGenerator:
    """Timestamp + random suffix ids, e.g. ``RM-MF3K2Q9A-4C1E``"""

    def __call__(self, prefix):
        ts = _to_base36(int(time.time() * 1000))
        rand = uuid.uuid4().hex[:4].upper()
        return f"{prefix}-{ts}-{rand}"


class SequentialIdGenerator:
    """Monotonic counter ids, e.g. ``BM-000003``"""

    def __init__(self, start=1):
        self._counter = itertools.count(start)

    def __call__(self, prefix):
        return f"{prefix}-{next(self._counter):06d}"


@functools.lru_cache(maxsize=None)
def _load_generator(path):
    generator = import_string(path)
    if isinstance(generator, type):
        generator = generator()
    return generator


def get_id_generator():
    """The configured generator; one shared instance per dotted path"""
    return _load_generator(settings.ALLOCATION_ID_GENERATOR)
