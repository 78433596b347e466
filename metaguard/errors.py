"""
Metaguard Error Taxonomy

Every failure the engine can report is a MetadataError carrying a stable
ErrorCode. Errors are never recovered locally: the router rolls back the
instruction and re-raises, so the caller sees exactly one typed code per
invocation.

    decode failure            MalformedInstruction, DeserializationError
    locked-asset veto         LockedToken, UnlockedToken
    unsupported for regime    InstructionNotSupported, Removed
    missing account           NotEnoughAccountKeys, MissingEditionAccount,
                              MissingTokenRecord
    authorization config      InvalidAuthorizationRules
    invalid operation         InvalidOperation
    derivation mismatch       DerivationMismatch
    downstream primitive      TokenLedgerError

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Optional


class ErrorCode(IntEnum):
    """Stable numeric codes surfaced to the host ledger."""
    MALFORMED_INSTRUCTION = 1
    DESERIALIZATION_ERROR = 2
    DATA_TYPE_MISMATCH = 3
    NOT_ENOUGH_ACCOUNT_KEYS = 4
    INCORRECT_OWNER = 5
    DERIVATION_MISMATCH = 6
    MINT_MISMATCH = 7
    MISSING_REQUIRED_SIGNATURE = 8
    INVALID_AUTHORITY_TYPE = 9
    LOCKED_TOKEN = 10
    UNLOCKED_TOKEN = 11
    INSTRUCTION_NOT_SUPPORTED = 12
    MISSING_EDITION_ACCOUNT = 13
    MISSING_TOKEN_RECORD = 14
    INVALID_AUTHORIZATION_RULES = 15
    INVALID_OPERATION = 16
    INVALID_DELEGATE_ROLE = 17
    INVALID_TOKEN_STANDARD = 18
    DATA_IS_IMMUTABLE = 19
    CREATOR_NOT_FOUND = 20
    ALREADY_INITIALIZED = 21
    TOKEN_LEDGER_ERROR = 22
    REMOVED = 23
    INVALID_ASSET_DATA = 24


class MetadataError(Exception):
    """Base class for every failure the engine reports."""

    code: ErrorCode = ErrorCode.MALFORMED_INSTRUCTION
    default_message: str = "instruction failed"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": int(self.code),
            "error": self.code.name,
            "message": self.message,
        }
        if self.context:
            d["context"] = {k: str(v) for k, v in self.context.items()}
        return d


class MalformedInstruction(MetadataError):
    code = ErrorCode.MALFORMED_INSTRUCTION
    default_message = "instruction data could not be decoded"


class DeserializationError(MetadataError):
    code = ErrorCode.DESERIALIZATION_ERROR
    default_message = "account data could not be decoded"


class DataTypeMismatch(MetadataError):
    code = ErrorCode.DATA_TYPE_MISMATCH
    default_message = "account discriminator does not match the expected record"


class NotEnoughAccountKeys(MetadataError):
    code = ErrorCode.NOT_ENOUGH_ACCOUNT_KEYS
    default_message = "a required account was not supplied"


class IncorrectOwner(MetadataError):
    code = ErrorCode.INCORRECT_OWNER
    default_message = "account is not owned by the expected program"


class DerivationMismatch(MetadataError):
    code = ErrorCode.DERIVATION_MISMATCH
    default_message = "account does not match the expected derived address"


class MintMismatch(MetadataError):
    code = ErrorCode.MINT_MISMATCH
    default_message = "account refers to a different mint"


class MissingRequiredSignature(MetadataError):
    code = ErrorCode.MISSING_REQUIRED_SIGNATURE
    default_message = "authority did not sign the instruction"


class InvalidAuthorityType(MetadataError):
    code = ErrorCode.INVALID_AUTHORITY_TYPE
    default_message = "authority is not allowed to perform this operation"


class LockedToken(MetadataError):
    code = ErrorCode.LOCKED_TOKEN
    default_message = "token is locked"


class UnlockedToken(MetadataError):
    code = ErrorCode.UNLOCKED_TOKEN
    default_message = "token is not locked"


class InstructionNotSupported(MetadataError):
    code = ErrorCode.INSTRUCTION_NOT_SUPPORTED
    default_message = "instruction not supported for programmable assets"


class MissingEditionAccount(MetadataError):
    code = ErrorCode.MISSING_EDITION_ACCOUNT
    default_message = "edition account is required"


class MissingTokenRecord(MetadataError):
    code = ErrorCode.MISSING_TOKEN_RECORD
    default_message = "token record account is required"


class InvalidAuthorizationRules(MetadataError):
    code = ErrorCode.INVALID_AUTHORIZATION_RULES
    default_message = "invalid authorization rules"


class InvalidOperation(MetadataError):
    code = ErrorCode.INVALID_OPERATION
    default_message = "operation is not supported or is missing required facts"


class InvalidDelegateRole(MetadataError):
    code = ErrorCode.INVALID_DELEGATE_ROLE
    default_message = "delegate role not allowed for this operation"


class InvalidTokenStandard(MetadataError):
    code = ErrorCode.INVALID_TOKEN_STANDARD
    default_message = "token standard not valid for this operation"


class DataIsImmutable(MetadataError):
    code = ErrorCode.DATA_IS_IMMUTABLE
    default_message = "asset record is immutable"


class CreatorNotFound(MetadataError):
    code = ErrorCode.CREATOR_NOT_FOUND
    default_message = "signer is not a creator of this asset"


class AlreadyInitialized(MetadataError):
    code = ErrorCode.ALREADY_INITIALIZED
    default_message = "account is already initialized"


class TokenLedgerError(MetadataError):
    code = ErrorCode.TOKEN_LEDGER_ERROR
    default_message = "token ledger primitive failed"


class InvalidAssetData(MetadataError):
    code = ErrorCode.INVALID_ASSET_DATA
    default_message = "asset data exceeds allowed limits"


class Removed(MetadataError):
    code = ErrorCode.REMOVED
    default_message = "instruction has been removed"


class InvariantViolation(Exception):
    """Internal invariant violated (programming error, not a user failure)."""
    pass
