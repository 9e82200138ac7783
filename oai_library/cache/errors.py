"""Cache store exceptions."""


class CacheStoreError(Exception):
    """Base error raised by the cache store."""


class CacheStoreUnavailable(CacheStoreError):
    """The underlying database could not be read or written.

    Fatal for a protocol request: surfaced as a transport-level 5xx
    rather than an OAI-PMH error element.
    """
