"""Custom exceptions for the trove core."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Type


class TroveCoreError(RuntimeError):
    """Base class for trove core failures."""


class EncodingError(TroveCoreError, ValueError):
    """Raised when an operation field cannot be encoded (range, size)."""


class EncodingLengthMismatch(EncodingError):
    """Raised when a payload's summed length disagrees with its expected length.

    Always a logic defect; never retried.
    """

    def __init__(self, operation: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Serialization length mismatch for {operation}: expected {expected}, got {actual}"
        )
        self.operation = operation
        self.expected = expected
        self.actual = actual


class RecordDecodeError(ValueError):
    """Raised when a ledger record has the wrong discriminator or is truncated."""


class SnapshotFetchFailure(TroveCoreError):
    """Raised when a snapshot cannot be read at all (e.g. connectivity loss)."""


class ProgramRejection(TroveCoreError):
    """Raised when the protocol program rejects a transaction."""

    def __init__(
        self,
        code: Optional[str],
        message: Optional[str] = None,
        logs: Optional[Sequence[str]] = None,
    ) -> None:
        detail = message or "program rejected the transaction"
        super().__init__(f"[{code or 'unknown'}] {detail}")
        self.code = code
        self.message = message
        self.logs: List[str] = list(logs or [])


class StaleProofRejection(ProgramRejection):
    """The neighbor proof no longer matches the program's current ordering."""


class BusinessRuleRejection(ProgramRejection):
    """A protocol rule rejected the request; retrying cannot change the outcome."""


class InsufficientLiquidity(BusinessRuleRejection):
    pass


class BelowMinimum(BusinessRuleRejection):
    pass


class RatioViolation(BusinessRuleRejection):
    pass


REJECTION_CODES: Dict[str, Type[ProgramRejection]] = {
    "InvalidList": StaleProofRejection,
    "NotEnoughLiquidityForRedeem": InsufficientLiquidity,
    "CollateralBelowMinimum": BelowMinimum,
    "LoanAmountBelowMinimum": BelowMinimum,
    "InvalidAmount": BelowMinimum,
    "InsufficientCollateral": RatioViolation,
    "InvalidCollateralRatio": RatioViolation,
}


def classify_rejection(
    code: Optional[str],
    message: Optional[str] = None,
    logs: Optional[Sequence[str]] = None,
) -> ProgramRejection:
    """Map a program error code onto the rejection taxonomy."""
    cls = REJECTION_CODES.get(code or "", ProgramRejection)
    return cls(code, message, logs)
