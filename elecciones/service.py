"""Casting entry point: validator, then ledger, receipt included."""
import logging
from typing import Optional

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from elecciones import crud
from elecciones.config import CAST_RETRY_ATTEMPTS, CAST_RETRY_WAIT_SECONDS
from elecciones.errors import AlreadyVoted, ElectionError, ElectionNotFound, StoreUnavailable, VoterNotFound
from elecciones.ledger import CastResult, VoteLedger
from elecciones.lifecycle import DateLike
from elecciones.models.user_model import User
from elecciones.models.vote_model import Ballot
from elecciones.storage import Store
from elecciones.validator import validate_ballot

logger = logging.getLogger(__name__)


def cast_vote(
    store: Store,
    voter_id: str,
    organization_id: str,
    election_id: str,
    ballot: Ballot,
    now: DateLike = None,
    ledger: Optional[VoteLedger] = None,
) -> CastResult:
    election = crud.get_election(store, election_id)
    if election.organization_id != organization_id:
        raise ElectionNotFound(election_id=election_id)

    record = store.get_voter(voter_id)
    if record is None:
        raise VoterNotFound(voter_id=voter_id)
    voter = User.model_validate(record)
    if voter.organization_id != organization_id:
        raise VoterNotFound(voter_id=voter_id)

    candidates = crud.list_candidates(store, election_id)
    try:
        validate_ballot(election, voter, ballot, candidates, now)
    except ElectionError as e:
        logger.warning(f"Ballot rejected for election {election_id}: {e.code}")
        raise

    ledger = ledger or VoteLedger(store)
    return ledger.cast(voter_id, organization_id, election_id, ballot)


def _recover_cast(ledger: VoteLedger, voter_id: str, election_id: str) -> Optional[CastResult]:
    """Find the outcome of an attempt that may have committed before failing."""
    record = ledger.store.get_voter(voter_id)
    if record is None:
        return None
    voter = User.model_validate(record)
    if not voter.has_voted(election_id):
        return None
    vote = ledger.find_vote(election_id, voter_id)
    if vote is None:
        raise AlreadyVoted(election_id=election_id, voter_id=voter_id)
    logger.info(f"Recovered committed vote for election {election_id}, receipt {vote.receipt}")
    return CastResult(vote=vote, updated_voter=voter)


def cast_vote_with_retry(
    store: Store,
    voter_id: str,
    organization_id: str,
    election_id: str,
    ballot: Ballot,
    now: DateLike = None,
    attempts: int = CAST_RETRY_ATTEMPTS,
    wait_seconds: float = CAST_RETRY_WAIT_SECONDS,
) -> CastResult:
    """Cast, retrying only while the store is unavailable.

    A failed attempt has an unknown outcome, so each retry first re-reads the
    voter: if the earlier attempt did commit, its vote is returned instead of
    casting a second time.
    """
    ledger = VoteLedger(store)
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=wait_seconds, max=wait_seconds * 10),
        retry=retry_if_exception_type(StoreUnavailable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                recovered = _recover_cast(ledger, voter_id, election_id)
                if recovered is not None:
                    return recovered
            return cast_vote(store, voter_id, organization_id, election_id, ballot, now, ledger)
