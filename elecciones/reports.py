"""Read-only reports for administrators: participation and the vote audit log."""
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from elecciones.lifecycle import DateLike, election_status
from elecciones.models.election_model import Election, Status
from elecciones.models.user_model import User
from elecciones.models.vote_model import Vote


class ParticipationRow(BaseModel):
    voter_id: str
    codigo: str
    nombre: str
    curso: str
    paralelo: str
    voted: Dict[str, bool]
    missing_votes: int


class ParticipationReport(BaseModel):
    active_elections: List[str]
    total_voters: int
    voters_with_missing_votes: int
    rows: List[ParticipationRow]


def participation_report(
    users: Iterable[User], elections: Iterable[Election], now: DateLike = None, only_missing: bool = False
) -> ParticipationReport:
    active = [e.id for e in elections if election_status(e, now) is Status.ACTIVA]
    rows = []
    for user in users:
        if not user.rol.is_voter:
            continue
        voted = {election_id: user.has_voted(election_id) for election_id in active}
        rows.append(ParticipationRow(
            voter_id=user.id,
            codigo=user.codigo,
            nombre=user.full_name,
            curso=user.curso,
            paralelo=user.paralelo,
            voted=voted,
            missing_votes=sum(1 for done in voted.values() if not done),
        ))
    missing = [row for row in rows if row.missing_votes > 0]
    return ParticipationReport(
        active_elections=active,
        total_voters=len(rows),
        voters_with_missing_votes=len(missing),
        rows=missing if only_missing else rows,
    )


def audit_log(votes: Iterable[Vote], search: Optional[str] = None) -> List[Vote]:
    """Votes newest first, optionally filtered by a receipt fragment."""
    needle = (search or "").strip().lower()
    matching = [v for v in votes if not needle or needle in v.receipt.lower()]
    return sorted(matching, key=lambda v: v.timestamp, reverse=True)
