"""Vote receipts.

A receipt looks like ``rcpt-<election>-<voter>-<token>``: the first four
characters of the election and voter ids, then ten hex characters of a
BLAKE2b digest of the vote id. The vote id is allocated by the store inside
the cast transaction, so nobody can compute a receipt before the vote exists,
and the receipt says nothing about the choice on the ballot.
"""
import hashlib
import hmac

RECEIPT_PREFIX = "rcpt"
ID_SLICE = 4
TOKEN_LENGTH = 10


def _token(vote_id: str) -> str:
    digest = hashlib.blake2b(vote_id.encode("utf-8"), digest_size=8).hexdigest()
    return digest[:TOKEN_LENGTH]


def make_receipt(election_id: str, voter_id: str, vote_id: str) -> str:
    if not vote_id:
        raise ValueError("a receipt needs the stored vote id")
    return f"{RECEIPT_PREFIX}-{election_id[:ID_SLICE]}-{voter_id[:ID_SLICE]}-{_token(vote_id)}"


def verify_receipt(receipt: str, election_id: str, voter_id: str, vote_id: str) -> bool:
    """Check that ``receipt`` was issued for this exact vote record."""
    if not vote_id:
        return False
    return hmac.compare_digest(receipt, make_receipt(election_id, voter_id, vote_id))
