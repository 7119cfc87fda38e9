import re

from walletgraph.core.errors import ValidationError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    return (address or "").strip().lower()


def is_valid_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match((address or "").strip()))


def validate_address(address: str) -> str:
    """Return the lower-cased address or raise ValidationError."""
    if not is_valid_address(address):
        raise ValidationError(f"Invalid Ethereum address format: {address!r}")
    return normalize_address(address)
