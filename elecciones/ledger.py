"""The vote ledger: the only place a vote is ever written.

:meth:`VoteLedger.cast` reads the voter, checks ``ha_votado`` and then writes
the vote and the updated ``ha_votado`` inside one store transaction. Either
both writes land or neither does. The check happens inside the transaction,
so it is the authority for ``AlreadyVoted``; policy checks (dates, toggles,
candidates) belong to :mod:`elecciones.validator` and run before this.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from elecciones.errors import AlreadyVoted, StoreUnavailable, VoterNotFound
from elecciones.models.user_model import User
from elecciones.models.vote_model import Ballot, Vote
from elecciones.receipts import make_receipt
from elecciones.storage import DuplicateRecord, Store, Transaction

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CastResult:
    vote: Vote
    updated_voter: User

    def to_dict(self) -> Dict[str, Any]:
        return {"vote": self.vote.to_document(), "updatedVoter": self.updated_voter.public_dict()}


class VoteLedger:
    def __init__(self, store: Store, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or _utcnow

    def cast(self, voter_id: str, organization_id: str, election_id: str, ballot: Ballot) -> CastResult:
        def record_vote(tx: Transaction) -> CastResult:
            record = tx.get_voter(voter_id)
            if record is None:
                raise VoterNotFound(voter_id=voter_id)
            voter = User.model_validate(record)
            if voter.has_voted(election_id):
                raise AlreadyVoted(election_id=election_id, voter_id=voter_id)

            vote_id = tx.allocate_id("votes")
            vote = Vote.from_ballot(
                ballot,
                id=vote_id,
                organization_id=organization_id,
                election_id=election_id,
                voter_id=voter_id,
                timestamp=self.clock().isoformat(),
                receipt=make_receipt(election_id, voter_id, vote_id),
            )
            ha_votado = voter.ha_votado + [election_id]
            tx.insert("votes", vote.to_document())
            tx.update("users", voter_id, {"ha_votado": ha_votado})
            return CastResult(vote=vote, updated_voter=voter.model_copy(update={"ha_votado": ha_votado}))

        try:
            result = self.store.transactionally(record_vote)
        except DuplicateRecord as e:
            if e.collection != "votes":
                raise
            if "receipt" in e.keys:
                # nothing was written; a retry allocates a new vote id
                logger.error(f"Receipt collision in election {election_id}")
                raise StoreUnavailable(election_id=election_id) from e
            # Another writer got past the voter check; the unique index caught it.
            logger.warning(f"Duplicate vote blocked by storage for election {election_id}")
            raise AlreadyVoted(election_id=election_id, voter_id=voter_id) from e
        except AlreadyVoted:
            logger.warning(f"Voter {voter_id} already voted in election {election_id}")
            raise

        logger.info(f"Vote recorded for election {election_id}, receipt {result.vote.receipt}")
        return result

    def find_vote(self, election_id: str, voter_id: str) -> Optional[Vote]:
        records = self.store.find("votes", electionId=election_id, voterId=voter_id)
        return Vote.model_validate(records[0]) if records else None
