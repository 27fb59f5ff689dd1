"""
Storage error taxonomy.

Store operations never leak SQLAlchemy exceptions; they are translated into
one of the classes below (with the original chained as ``__cause__``).
Delete / mark-returned on a row that does not match is not an error.
"""


class StorageError(Exception):
    """Base class for every failure raised by the storage layer."""


class StorageUnavailable(StorageError):
    """The database could not be reached or the statement failed to run."""


class ConstraintViolation(StorageError):
    """A foreign-key or not-null constraint rejected an insert or update."""
