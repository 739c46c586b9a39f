"""
Errors raised by the River client.

Only caller misuse is represented here. Storage failures surface as the
exceptions raised by SQLAlchemy and the database driver, unwrapped.
"""

__all__ = ["ConfigurationError"]


class ConfigurationError(ValueError):
    """Raised before any I/O when insert arguments or client options are invalid."""
