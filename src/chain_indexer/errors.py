"""
Error taxonomy for the indexer.

FetchError and DecodeError are recovered where they happen (skip the unit,
log, carry on). ConnectivityError and PersistenceError end the current scan.
"""


class IndexerError(Exception):
    """Base exception for indexer errors."""
    pass


class FetchError(IndexerError):
    """A single block or receipt could not be fetched."""
    pass


class ConnectivityError(FetchError):
    """The chain endpoint could not be reached at all."""
    pass


class DecodeError(IndexerError):
    """Calldata does not match any function of the contract ABI."""
    pass


class PersistenceError(IndexerError):
    """The transaction store could not be written."""
    pass


class ConfigError(IndexerError):
    """Invalid or missing configuration value."""
    pass
