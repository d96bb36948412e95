from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class BallotKind(str, Enum):
    CANDIDATE = "candidate"
    BLANK = "blank"
    NULL = "null"
    WRITE_IN = "write-in"


class CandidateBallot(BaseModel):
    kind: Literal["candidate"] = "candidate"
    candidate_id: str = Field(..., min_length=1)


class BlankBallot(BaseModel):
    kind: Literal["blank"] = "blank"


class NullBallot(BaseModel):
    kind: Literal["null"] = "null"


class WriteInBallot(BaseModel):
    kind: Literal["write-in"] = "write-in"
    name: str = ""


Ballot = Annotated[
    Union[CandidateBallot, BlankBallot, NullBallot, WriteInBallot],
    Field(discriminator="kind"),
]

_ballot_adapter = TypeAdapter(Ballot)


def parse_ballot(data: Dict[str, Any]) -> Ballot:
    return _ballot_adapter.validate_python(data)


class Vote(BaseModel):
    """One cast ballot, exactly as it is stored.

    Serialized with camelCase keys: ``candidateId`` is always present (null
    for non-candidate ballots) while ``writeInName`` and ``isNullVote`` only
    appear on the ballots they describe.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    organization_id: str
    election_id: str
    voter_id: str
    candidate_id: Optional[str] = None
    write_in_name: Optional[str] = None
    is_null_vote: bool = False
    timestamp: str
    receipt: str

    @model_validator(mode="after")
    def _single_ballot_kind(self):
        markers = [self.candidate_id is not None, bool(self.write_in_name), self.is_null_vote]
        if sum(markers) > 1:
            raise ValueError("a vote can only be one of candidate, write-in or null")
        return self

    @property
    def kind(self) -> BallotKind:
        if self.candidate_id is not None:
            return BallotKind.CANDIDATE
        if self.write_in_name:
            return BallotKind.WRITE_IN
        if self.is_null_vote:
            return BallotKind.NULL
        return BallotKind.BLANK

    @classmethod
    def from_ballot(cls, ballot: Ballot, **fields: Any) -> "Vote":
        if isinstance(ballot, CandidateBallot):
            fields["candidate_id"] = ballot.candidate_id
        elif isinstance(ballot, WriteInBallot):
            fields["write_in_name"] = ballot.name.strip()
        elif isinstance(ballot, NullBallot):
            fields["is_null_vote"] = True
        return cls(**fields)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        if not doc["writeInName"]:
            doc.pop("writeInName")
        if not doc["isNullVote"]:
            doc.pop("isNullVote")
        return doc
