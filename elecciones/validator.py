"""Checks a ballot must pass before it reaches the ledger.

:func:`validate_ballot` raises on the first failed check and writes nothing.
The ledger repeats the "already voted" check inside its transaction.
"""
import logging
from typing import Iterable, List, Set, Tuple

from elecciones.errors import (
    AlreadyVoted,
    ElectionNotActive,
    EmptyWriteIn,
    InvalidCandidate,
    OptionDisabled,
)
from elecciones.lifecycle import DateLike, election_status
from elecciones.models.election_model import Candidate, Election, Status
from elecciones.models.user_model import User
from elecciones.models.vote_model import Ballot, BallotKind, CandidateBallot, WriteInBallot
from elecciones.schemas import ImportIssue, VoterImportRow

logger = logging.getLogger(__name__)


def validate_ballot(
    election: Election,
    voter: User,
    ballot: Ballot,
    candidates: Iterable[Candidate],
    now: DateLike = None,
) -> None:
    status = election_status(election, now)
    if status is not Status.ACTIVA:
        raise ElectionNotActive(election_id=election.id, status=status.value)

    if voter.has_voted(election.id):
        raise AlreadyVoted(election_id=election.id, voter_id=voter.id)

    kind = BallotKind(ballot.kind)
    if not election.allows(kind):
        raise OptionDisabled(election_id=election.id, kind=kind.value)

    if isinstance(ballot, CandidateBallot):
        valid_ids = {c.id for c in candidates if c.eleccion_id == election.id}
        if ballot.candidate_id not in valid_ids:
            raise InvalidCandidate(election_id=election.id, candidate_id=ballot.candidate_id)

    if isinstance(ballot, WriteInBallot) and not ballot.name.strip():
        raise EmptyWriteIn(election_id=election.id)


def find_duplicate_codes(
    rows: Iterable[VoterImportRow], existing_codes: Iterable[str]
) -> Tuple[List[VoterImportRow], List[ImportIssue]]:
    """Split imported voter rows into the ones to create and the ones to skip.

    A row is skipped when its ``codigo`` already belongs to a user of the
    organization or repeats an earlier row of the same batch. Codes are
    compared after trimming.
    """
    known: Set[str] = {code.strip() for code in existing_codes}
    seen: Set[str] = set()
    accepted: List[VoterImportRow] = []
    issues: List[ImportIssue] = []
    for line, row in enumerate(rows, start=1):
        code = row.codigo.strip()
        if code in known:
            issues.append(ImportIssue(line=line, codigo=code, reason="existing"))
        elif code in seen:
            issues.append(ImportIssue(line=line, codigo=code, reason="repeated"))
        else:
            seen.add(code)
            accepted.append(row)
    if issues:
        logger.info(f"Voter import skipped {len(issues)} duplicated codes")
    return accepted, issues
