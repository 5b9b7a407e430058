"""ULID primary keys.

Usage:
    from libs.common.ids import new_ulid

    ulid: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_ulid)
"""

from ulid import ULID


def new_ulid() -> str:
    """Return a new lexicographically sortable identifier as a 26-char string."""
    return str(ULID())
