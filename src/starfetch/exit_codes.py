"""Numeric process exit codes for runs terminated by a starfetch error.

Each constant maps to an error category and is referenced by the
corresponding :class:`~starfetch.exceptions.StarfetchError` subclass.
A traversal driver that lets a hard error end its run can exit with
``exc.exit_code`` so that wrapper scripts can tell the failure classes apart.
"""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including configuration problems)."""

EXIT_CACHE_IO_ERROR = 8
"""The response cache could not be read or written."""

EXIT_DECODE_ERROR = 9
"""A response body could not be decoded, even after refetching it."""
