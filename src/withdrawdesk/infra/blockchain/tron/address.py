"""Tron base58check addresses and their hex / EVM forms."""

import base58

from withdrawdesk.exceptions import InvalidAddressError

ADDRESS_PREFIX = 0x41
ADDRESS_LENGTH = 21  # prefix + 20-byte account id


def decode_address(address: str) -> bytes:
    """21 raw bytes (0x41 prefix included) of a base58check Tron address."""
    try:
        raw = base58.b58decode_check(address)
    except ValueError as e:
        raise InvalidAddressError(f"Invalid Tron address: {address}") from e
    if len(raw) != ADDRESS_LENGTH or raw[0] != ADDRESS_PREFIX:
        raise InvalidAddressError(f"Invalid Tron address: {address}")
    return raw


def is_valid_address(address: str) -> bool:
    try:
        decode_address(address)
        return True
    except InvalidAddressError:
        return False


def to_hex(address: str) -> str:
    """Hex form with the 41 prefix, as the TronGrid wallet API expects without `visible`."""
    return decode_address(address).hex()


def to_evm(address: str) -> str:
    """0x-prefixed 20-byte form used inside ABI-encoded parameters."""
    return "0x" + decode_address(address)[1:].hex()


def from_evm(address: str) -> str:
    body = bytes.fromhex(address.removeprefix("0x")[-40:])
    return base58.b58encode_check(bytes([ADDRESS_PREFIX]) + body).decode("ascii")
