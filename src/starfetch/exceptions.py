"""Exception hierarchy for starfetch.

All exceptions inherit from :class:`StarfetchError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`starfetch.exit_codes`.

Only *hard* failures are raised.  Rate limits and transient network errors
are absorbed by the retry loop, and permanent HTTP errors degrade to a soft
failure reported on :class:`~starfetch.client.outcomes.FetchResult`.

Subclass hierarchy::

    StarfetchError (exit 1)
    +-- ConfigError     (exit 1)
    +-- CacheIOError    (exit 8)
    +-- DecodeError     (exit 9)
"""

from starfetch.exit_codes import (
    EXIT_CACHE_IO_ERROR,
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
)


class StarfetchError(Exception):
    """Base exception for all starfetch errors.

    Args:
        message: Human-readable error description naming the operation and URL.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(StarfetchError):
    """Raised for configuration problems (invalid JSON, bad credential sources, bad scopes)."""

    exit_code = EXIT_GENERIC_FAILURE


class CacheIOError(StarfetchError):
    """Raised when the on-disk response cache cannot be read, written, or cleared.

    Signals systemic storage trouble rather than a remote API hiccup, so it
    always propagates and terminates the run.
    """

    exit_code = EXIT_CACHE_IO_ERROR


class DecodeError(StarfetchError):
    """Raised when a response body fails to decode twice in a row.

    The first failure is treated as cache corruption: the entry is
    invalidated and the fetch is retried once.
    """

    exit_code = EXIT_DECODE_ERROR
