"""Error taxonomy shared by the crypto layer, the blob stores and the share service.

Transport errors (``StoreError`` subclasses) are raised by the storage adapters and
propagate unchanged through the service, except ``NotFoundError`` which the service
maps onto ``ShareNotFoundError``. ``DecryptionError`` never leaves the service: it is
normalized to ``InvalidCredentialError`` so callers cannot tell a bad id from a bad
passcode.
"""

from __future__ import annotations


class TransferError(RuntimeError):
    pass


class KeyDerivationError(TransferError):
    pass


class DecryptionError(TransferError):
    pass


class StoreError(TransferError):
    pass


class StoreUnavailableError(StoreError):
    pass


class NotConfiguredError(StoreUnavailableError):
    pass


class ConflictError(StoreError):
    pass


class NetworkError(StoreError):
    pass


class NotFoundError(StoreError):
    pass


class LocalIndexError(TransferError):
    pass


class ShareNotFoundError(TransferError):
    pass


class ShareExpiredError(TransferError):
    pass


class InvalidCredentialError(TransferError):
    pass


INVALID_CREDENTIAL_MESSAGE = "Invalid share ID or passcode"
