"""
RingCT Wallet Engine Error Handling

All error codes and exception classes.
"""

from enum import IntEnum
from typing import Optional, Any


class ErrorCode(IntEnum):
    """Engine error codes."""

    # 1xxx - Validation errors
    INVALID_PARAMETER = 1001
    INVALID_KEY = 1002
    INVALID_ADDRESS = 1003
    INVALID_AMOUNT = 1004
    INVALID_RING_SIZE = 1005
    INVALID_RANGE_PARAMS = 1006

    # 2xxx - Format errors
    MALFORMED_DATA = 2001
    UNKNOWN_OUTPUT_TYPE = 2002
    INVALID_CHECKSUM = 2003

    # 3xxx - Funds errors
    INSUFFICIENT_FUNDS = 3001
    TOO_MANY_INPUTS = 3002

    # 4xxx - Anonymity set errors
    INSUFFICIENT_DECOYS = 4001

    # 5xxx - Cryptographic errors
    CRYPTO_VERIFICATION_FAILED = 5001
    RANGE_PROOF_FAILED = 5002
    RING_SIGNATURE_FAILED = 5003

    # 6xxx - RPC errors
    RPC_FAILURE = 6001
    RPC_TIMEOUT = 6002


class RingCTError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        result = {
            "code": self.code.value,
            "name": self.code.name,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


# ==============================================================================
# Validation Errors (1xxx)
# ==============================================================================

class ValidationError(RingCTError):
    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_PARAMETER,
        details: Any = None
    ):
        super().__init__(code, message, details)


class InvalidKeyError(ValidationError):
    def __init__(self, name: str, reason: str):
        super().__init__(
            f"Invalid {name}: {reason}",
            ErrorCode.INVALID_KEY,
            {"key": name},
        )


class InvalidAmountError(ValidationError):
    def __init__(self, amount: Any):
        super().__init__(
            f"Invalid amount: {amount}",
            ErrorCode.INVALID_AMOUNT,
            {"amount": str(amount)},
        )


class InvalidRingSizeError(ValidationError):
    def __init__(self, ring_size: int, minimum: int, maximum: int):
        super().__init__(
            f"Ring size must be between {minimum} and {maximum}, got {ring_size}",
            ErrorCode.INVALID_RING_SIZE,
            {"ring_size": ring_size, "min": minimum, "max": maximum},
        )


# ==============================================================================
# Format Errors (2xxx)
# ==============================================================================

class FormatError(RingCTError):
    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.MALFORMED_DATA,
        details: Any = None
    ):
        super().__init__(code, message, details)


class UnknownOutputTypeError(FormatError):
    def __init__(self, output_type: int):
        super().__init__(
            f"Unknown output type: {output_type}",
            ErrorCode.UNKNOWN_OUTPUT_TYPE,
            {"output_type": output_type},
        )


class ChecksumError(FormatError):
    def __init__(self, message: str = "Invalid checksum"):
        super().__init__(message, ErrorCode.INVALID_CHECKSUM)


# ==============================================================================
# Funds Errors (3xxx)
# ==============================================================================

class InsufficientFundsError(RingCTError):
    def __init__(self, required: int, available: int, fee: int = 0):
        super().__init__(
            ErrorCode.INSUFFICIENT_FUNDS,
            f"Insufficient funds: need {required} ({required - fee} + {fee} fee), have {available}",
            {"required": required, "available": available, "fee": fee},
        )


class TooManyInputsError(RingCTError):
    def __init__(self, limit: int, target: int, selectable: int):
        super().__init__(
            ErrorCode.TOO_MANY_INPUTS,
            f"Transaction would require more than {limit} inputs. "
            f"Need {target}, can only select {selectable} with {limit} inputs",
            {"limit": limit, "target": target, "selectable": selectable},
        )


# ==============================================================================
# Anonymity Set Errors (4xxx)
# ==============================================================================

class InsufficientDecoysError(RingCTError):
    def __init__(self, needed: int, available: int):
        super().__init__(
            ErrorCode.INSUFFICIENT_DECOYS,
            f"Not enough decoy outputs available. Need {needed}, have {available}",
            {"needed": needed, "available": available},
        )


# ==============================================================================
# Cryptographic Errors (5xxx)
# ==============================================================================

class CryptoVerificationError(RingCTError):
    """A signature, proof or balance produced by the engine failed its self-check."""
    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.CRYPTO_VERIFICATION_FAILED, message, details)


class RangeProofError(RingCTError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.RANGE_PROOF_FAILED, message, details)


class RingSignatureError(RingCTError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.RING_SIGNATURE_FAILED, message, details)


# ==============================================================================
# RPC Errors (6xxx)
# ==============================================================================

class RpcError(RingCTError):
    """RPC failure. Retryable; has no on-chain effect."""
    def __init__(
        self,
        message: str,
        rpc_code: Optional[int] = None,
        data: Any = None,
        code: ErrorCode = ErrorCode.RPC_FAILURE,
    ):
        self.rpc_code = rpc_code
        self.data = data
        details = None
        if rpc_code is not None or data is not None:
            details = {"rpc_code": rpc_code, "data": data}
        super().__init__(code, message, details)


class RpcTimeoutError(RpcError):
    def __init__(self, timeout: float):
        super().__init__(
            f"RPC request timeout after {timeout}s",
            code=ErrorCode.RPC_TIMEOUT,
        )
        self.timeout = timeout
