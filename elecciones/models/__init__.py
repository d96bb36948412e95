from elecciones.models.election_model import Candidate, Election, Status
from elecciones.models.user_model import Organization, Role, User
from elecciones.models.vote_model import (
    Ballot,
    BallotKind,
    BlankBallot,
    CandidateBallot,
    NullBallot,
    Vote,
    WriteInBallot,
    parse_ballot,
)
