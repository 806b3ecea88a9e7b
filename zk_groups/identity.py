"""Group identifier derivation and identity commitment parsing."""

from __future__ import annotations

import hashlib
from typing import Union

from .constants import DOMAIN_SEPARATORS, SNARK_SCALAR_FIELD
from .exceptions import ValidationError

Commitment = Union[int, str]


def group_id(name: str) -> int:
    """
    Derive the numeric group identifier from a group name.

    SHA3-256 over the domain-separated UTF-8 name, shifted right by 8 bits
    so the result always fits in the snark scalar field.
    """
    digest = hashlib.sha3_256(
        DOMAIN_SEPARATORS["group_id"] + name.encode("utf-8")
    ).digest()
    return int.from_bytes(digest, "big") >> 8


def parse_commitment(value: Commitment) -> int:
    """
    Normalize an identity commitment to an integer field element.

    Accepts ints, decimal strings and 0x-prefixed hex strings.

    Raises:
        ValidationError: If the value is not a field element
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid identity commitment: {value!r}")

    if isinstance(value, int):
        commitment = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                commitment = int(text, 16)
            else:
                commitment = int(text, 10)
        except ValueError:
            raise ValidationError(
                f"Invalid identity commitment: {value!r}"
            ) from None
    else:
        raise ValidationError(f"Invalid identity commitment: {value!r}")

    if commitment < 0 or commitment >= SNARK_SCALAR_FIELD:
        raise ValidationError(
            f"Identity commitment {value!r} is outside the snark scalar field"
        )
    return commitment


def format_commitment(commitment: int) -> str:
    return str(commitment)
