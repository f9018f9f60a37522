from __future__ import annotations


class DuplicateKeyError(ValueError):
    """A unique constraint rejected the write (slug, email, token, pending pair)."""
