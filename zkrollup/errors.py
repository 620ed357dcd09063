"""
Rejection reasons for rollup operations.

Every error aborts the single operation that raised it. Nothing the
operation wrote survives, and nothing is retried.
"""


class ValidationError(Exception):
    """Raised when validation fails."""
    pass


# Authorization

class NotOwner(ValidationError):
    pass


class NotAccountOwner(ValidationError):
    pass


# State validity

class AccountExists(ValidationError):
    pass


class InvalidAccount(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class InsufficientBalance(ValidationError):
    pass


class InvalidNonce(ValidationError):
    pass


class InvalidSignature(ValidationError):
    pass


# Proofs and commitments

class InvalidProof(ValidationError):
    pass


class StateRootMismatch(ValidationError):
    pass


# Batch shape

class BatchTooLarge(ValidationError):
    pass


class EmptyBatch(ValidationError):
    pass


# Lifecycle

class ContractPaused(ValidationError):
    pass


class NotPaused(ValidationError):
    pass


class ReentrantCall(ValidationError):
    pass
