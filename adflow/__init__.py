# adflow - ad-group workflow state for the creative production tool
# Derives group status from asset documents and scrubs review history

from .errors import (
    AdflowError,
    ConfirmationRequired,
    NotFoundError,
    PartialStateError,
    ScrubConfirmationRequired,
    StoreError,
    ValidationError,
)
from .store import DocumentStore, FirestoreDocumentStore, WriteOp

__all__ = [
    # Errors
    'AdflowError',
    'ConfirmationRequired',
    'NotFoundError',
    'PartialStateError',
    'ScrubConfirmationRequired',
    'StoreError',
    'ValidationError',
    # Store
    'DocumentStore',
    'FirestoreDocumentStore',
    'WriteOp',
]
