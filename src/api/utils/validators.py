"""
Input validation utilities for query API endpoints.
"""

import re
from typing import Tuple

from src.core.exceptions.handler import ServiceError, ServiceErrorCode
from src.core.service.ranking.levels import MAX_LEVEL, MIN_LEVEL


class AddressValidator:
    """Validators for EVM addresses and other hex identifiers."""

    @staticmethod
    def validate_evm_address(address: str) -> bool:
        """Validate EVM (Ethereum) address format."""
        if not address:
            return False

        # Remove 0x prefix if present
        addr = address.lower()
        if addr.startswith('0x'):
            addr = addr[2:]

        # Check if it's 40 hex characters
        if len(addr) != 40:
            return False

        return bool(re.match(r'^[0-9a-f]{40}$', addr))

    @staticmethod
    def validate_bytes32(value: str) -> bool:
        """0x-prefixed 32-byte hex value (referral codes)"""
        if not value:
            return False
        return bool(re.match(r'^0x[0-9a-f]{64}$', value.lower()))

    @staticmethod
    def normalize_evm_address(address: str) -> Tuple[bool, str]:
        """
        Canonical form used as entity id.
        Returns: (is_valid, lowercase 0x-prefixed address or error message)
        """
        if not address or not address.strip():
            return False, "Address cannot be empty"

        address = address.strip().lower()
        if not AddressValidator.validate_evm_address(address):
            return False, "Invalid EVM address format. Expected 40 hex characters with optional 0x prefix."

        if not address.startswith('0x'):
            address = '0x' + address
        return True, address


def require_evm_address(address: str, field: str = "address") -> str:
    """Normalized address or a 422 ServiceError"""
    is_valid, result = AddressValidator.normalize_evm_address(address)
    if not is_valid:
        raise ServiceError(
            code=ServiceErrorCode.INVALID_ADDRESS,
            message=result,
            status_code=422,
            details={"field": field, "value": address}
        )
    return result


def require_referral_code(code: str) -> str:
    if not AddressValidator.validate_bytes32(code):
        raise ServiceError(
            code=ServiceErrorCode.INVALID_FORMAT,
            message="Referral code must be a 0x-prefixed 32-byte hex value",
            status_code=422,
            details={"field": "code", "value": code}
        )
    return code.lower()


def require_level(level_id: int) -> int:
    if not MIN_LEVEL <= level_id <= MAX_LEVEL:
        raise ServiceError(
            code=ServiceErrorCode.INVALID_INPUT,
            message=f"Level must be between {MIN_LEVEL} and {MAX_LEVEL}",
            status_code=422,
            details={"field": "level_id", "value": level_id}
        )
    return level_id
