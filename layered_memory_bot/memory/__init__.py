from .adapter import ResourceStoreAdapter
from .layered import LayeredMemory
from .models import CharacterBinding, PreparedMemory, Resource, UserProfile
from .postgres_store import PostgresMemoryStore
from .profiles import UserProfileMemory
from .reply_context import ReplyContextResolver
from .scopes import ScopeMemory
from .store import MemoryStore
from .topics import extract_topics

__all__ = [
    "CharacterBinding",
    "LayeredMemory",
    "MemoryStore",
    "PostgresMemoryStore",
    "PreparedMemory",
    "ReplyContextResolver",
    "Resource",
    "ResourceStoreAdapter",
    "ScopeMemory",
    "UserProfile",
    "UserProfileMemory",
    "extract_topics",
]
