from .command_mixin import CommandMixin
from .identity_mixin import IdentityMixin
from .message_mixin import MessageMixin

__all__ = [
    "CommandMixin",
    "IdentityMixin",
    "MessageMixin",
]
