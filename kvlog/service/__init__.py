"""Access layer: serialized store access and MIME negotiation."""

from kvlog.service.mime import accept_header_matches, is_generic_mime
from kvlog.service.service import (
    InvalidMimeError,
    KeyNotFoundError,
    KVService,
    NotAcceptableError,
    ServiceError,
)

__all__ = [
    "InvalidMimeError",
    "KeyNotFoundError",
    "KVService",
    "NotAcceptableError",
    "ServiceError",
    "accept_header_matches",
    "is_generic_mime",
]
