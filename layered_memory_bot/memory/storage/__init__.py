from .resources import MemoryResourcesMixin
from .schema import MemorySchemaMixin

__all__ = [
    "MemorySchemaMixin",
    "MemoryResourcesMixin",
]
