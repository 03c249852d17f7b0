"""
Error taxonomy for the proof lifecycle.

Every failure raised by a component carries an ErrorKind so the lifecycle
controller can decide how to surface it:

- TRANSIENT: network or service unavailability, retry the same action
- VALIDATION: caller input is wrong, fix it before retrying
- CONFLICT: the work is already durably done, treat as non-blocking
- INTEGRITY: the response cannot be trusted, abort the action
- STATE: the action is not legal in the current lifecycle state

Lineage orphans and cycles are never errors; the resolver returns them as data.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories"""

    TRANSIENT = "transient"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    INTEGRITY = "integrity"
    STATE = "state"


class ImgProofError(Exception):
    """Base class for all imgproof failures"""

    kind: ErrorKind = ErrorKind.INTEGRITY

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT


# ========== TRANSIENT ==========

class ProvingServiceUnreachable(ImgProofError):
    kind = ErrorKind.TRANSIENT


class StorageUnavailable(ImgProofError):
    """Content-addressed storage rejected or failed an upload"""

    kind = ErrorKind.TRANSIENT

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LedgerTransactionError(ImgProofError):
    """The signer or ledger refused the verification call (message kept verbatim)"""

    kind = ErrorKind.TRANSIENT


class StoreUnavailable(ImgProofError):
    kind = ErrorKind.TRANSIENT


# ========== VALIDATION ==========

class ChainMappingError(ImgProofError):
    """A transformation record cannot be mapped to its wire form"""

    kind = ErrorKind.VALIDATION


class UnsupportedTransformType(ChainMappingError):
    def __init__(self, transform_type: str) -> None:
        super().__init__(f"Unknown transformation type: {transform_type}")
        self.transform_type = transform_type


class MissingRequiredParam(ChainMappingError):
    def __init__(self, transform_type: str, param: str) -> None:
        super().__init__(f"{transform_type} requires {param} parameter")
        self.transform_type = transform_type
        self.param = param


class MissingImage(ImgProofError):
    kind = ErrorKind.VALIDATION


class RecordNotFound(ImgProofError):
    kind = ErrorKind.VALIDATION


# ========== CONFLICT ==========

class DuplicatePublication(ImgProofError):
    """A record with this metadata uri already exists"""

    kind = ErrorKind.CONFLICT

    def __init__(self, metadata_uri: str) -> None:
        super().__init__(f"A proof with this IPFS metadata URI already exists: {metadata_uri}")
        self.metadata_uri = metadata_uri


class TxHashAlreadySet(ImgProofError):
    kind = ErrorKind.CONFLICT

    def __init__(self, metadata_uri: str, existing: str) -> None:
        super().__init__(f"Record {metadata_uri} is already anchored by {existing}")
        self.metadata_uri = metadata_uri
        self.existing = existing


# ========== INTEGRITY ==========

class InvalidProofResponse(ImgProofError):
    kind = ErrorKind.INTEGRITY


class InvalidStorageResponse(ImgProofError):
    kind = ErrorKind.INTEGRITY


class StaleResponse(ImgProofError):
    """A late response no longer matches the session it was issued for"""

    kind = ErrorKind.INTEGRITY


# ========== STATE ==========

class PublicationRequired(ImgProofError):
    kind = ErrorKind.STATE


class ProofRequired(PublicationRequired):
    """Publishing needs a proof artifact from the most recent generation"""


class OperationInProgress(ImgProofError):
    kind = ErrorKind.STATE


class InvalidTransition(ImgProofError):
    kind = ErrorKind.STATE


class SessionNotFound(ImgProofError):
    kind = ErrorKind.STATE
