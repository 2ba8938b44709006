"""Failure kinds reported by the board core.

The HTTP layer maps each kind to a status code; the core only reports the
kind and a message.
"""

from __future__ import annotations


class BoardError(Exception):
    """Base class for every failure raised by the board core."""


class ValidationError(BoardError):
    """A required field is missing or malformed."""


class InvalidReference(BoardError):
    """An identifier is not a well-formed id."""


class NotFound(BoardError):
    """A well-formed id matches no stored entity."""


class StorageError(BoardError):
    """The blob store failed to write or delete a blob."""
