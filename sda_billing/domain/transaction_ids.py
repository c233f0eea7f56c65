"""Sequential transaction ids: TXN-<ORG>-<letter><6 digits>, e.g. TXN-9F3A1C-A000042"""

import re
from typing import Iterable, Optional, Tuple

from sda_billing.domain.exceptions import TransactionIdAllocationError

MAX_NUMBER = 999_999
FIRST = ("A", 1)

# Legacy ids have no org segment; a "-N" suffix was used to break ties
_ID_PATTERN = re.compile(r"^TXN-(?:(?P<org>[A-Z0-9]+)-)?(?P<letter>[A-Z])(?P<number>\d{6})(?:-\d+)?$")


def org_prefix(organization_id: str) -> str:
    """First six alphanumerics of the organization id, upper-cased"""
    cleaned = re.sub(r"[^A-Z0-9]", "", organization_id.upper())
    if not cleaned:
        raise TransactionIdAllocationError(f"Cannot derive id prefix from organization '{organization_id}'")
    return cleaned[:6]


def format_transaction_id(prefix: str, letter: str, number: int) -> str:
    return f"TXN-{prefix}-{letter}{number:06d}"


def parse_transaction_id(transaction_id: str) -> Optional[Tuple[Optional[str], str, int]]:
    """(org prefix or None for legacy ids, letter, number), or None if not sequential"""
    match = _ID_PATTERN.match(transaction_id)
    if not match:
        return None
    return match.group("org"), match.group("letter"), int(match.group("number"))


def increment(letter: str, number: int) -> Tuple[str, int]:
    """Next position in the sequence; rolls to the next letter after 999999"""
    if number < MAX_NUMBER:
        return letter, number + 1
    if letter == "Z":
        raise TransactionIdAllocationError("Transaction id space exhausted (Z999999)")
    return chr(ord(letter) + 1), 1


def latest_position(existing_ids: Iterable[str], prefix: str) -> Optional[Tuple[str, int]]:
    """Highest (letter, number) among ids belonging to this prefix (legacy ids included)"""
    positions = []
    for transaction_id in existing_ids:
        parsed = parse_transaction_id(transaction_id)
        if parsed is None:
            continue
        org, letter, number = parsed
        if org is None or org == prefix:
            positions.append((letter, number))
    return max(positions) if positions else None


def next_transaction_id(existing_ids: Iterable[str], organization_id: str) -> str:
    """Id following the highest existing one; gaps are tolerated, never filled"""
    prefix = org_prefix(organization_id)
    latest = latest_position(existing_ids, prefix)
    letter, number = increment(*latest) if latest else FIRST
    return format_transaction_id(prefix, letter, number)
