"""Physical storage naming and identifier generation for FlexTable."""

import hashlib
import re
import secrets
from typing import List, Sequence, TypeVar

T = TypeVar('T')

SLUG_MAX_LENGTH = 50
HASH_LENGTH = 8

_NON_ALNUM_RUN = re.compile(r'[^a-z0-9]+')


def slugify_display_name(display_name: str) -> str:
    """Lowercase, collapse every non-alphanumeric run to '_', cap at 50 chars."""
    return _NON_ALNUM_RUN.sub('_', display_name.lower())[:SLUG_MAX_LENGTH]


def generate_internal_name(namespace: str, display_name: str, instant: int) -> str:
    """
    Derive the physical collection name for a table.

    Pattern: ``{namespace}_data_{hash8}_{slug}``. The hash is salted with the
    creation instant, so the name cannot be derived from the display name
    alone, while the same inputs always give the same name.

    Args:
        namespace: Namespace prefix (e.g. "myapp")
        display_name: User-visible table name (e.g. "Users")
        instant: Creation instant in epoch milliseconds

    Returns:
        Internal collection name (e.g. "myapp_data_8a7f3c2e_users")
    """
    digest = hashlib.md5(f"{namespace}_{display_name}_{instant}".encode('utf-8')).hexdigest()
    return f"{namespace}_data_{digest[:HASH_LENGTH]}_{slugify_display_name(display_name)}"


def generate_schema_id() -> str:
    return f"schema_{secrets.token_hex(8)}"


def generate_record_id() -> str:
    return f"rec_{secrets.token_hex(8)}"


def chunked(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """Split items into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]
