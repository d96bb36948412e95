"""Results aggregation.

:func:`aggregate_results` reduces the votes of one election to a
:class:`Tally`. It keeps no state, so calling it twice on the same inputs
gives the same tally, and it can be recomputed from the vote log at any time.

Every vote lands in exactly one bucket, so the bucket counts always add up to
``total_votes``. A vote naming a candidate that is no longer on this
election's list goes to ``orphaned``; it is neither dropped nor counted as
blank.
"""
from typing import Dict, Iterable, List

from pydantic import BaseModel

from elecciones.models.election_model import Candidate, Election
from elecciones.models.vote_model import BallotKind, Vote


class BucketResult(BaseModel):
    count: int = 0
    percentage: float = 0.0


class CandidateResult(BucketResult):
    candidate_id: str
    name: str
    partido_politico: str = ""
    cargo: str = ""


class WriteInResult(BucketResult):
    name: str


class Tally(BaseModel):
    election_id: str
    total_votes: int
    candidates: List[CandidateResult]
    blank: BucketResult
    null: BucketResult
    write_ins: List[WriteInResult]
    orphaned: BucketResult

    def bucket_total(self) -> int:
        return (
            sum(c.count for c in self.candidates)
            + self.blank.count
            + self.null.count
            + sum(w.count for w in self.write_ins)
            + self.orphaned.count
        )

    def write_in_counts(self) -> Dict[str, int]:
        return {w.name: w.count for w in self.write_ins}


def percentage(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(count / total * 100, 2)


def normalize_write_in(name: str) -> str:
    return name.strip().lower()


def aggregate_results(election: Election, candidates: Iterable[Candidate], votes: Iterable[Vote]) -> Tally:
    election_votes = [v for v in votes if v.election_id == election.id]
    total = len(election_votes)

    listed: List[Candidate] = []
    counts: Dict[str, int] = {}
    for c in candidates:
        if c.eleccion_id == election.id and c.id not in counts:
            listed.append(c)
            counts[c.id] = 0
    write_ins: Dict[str, int] = {}
    blank = null = orphaned = 0

    for vote in election_votes:
        kind = vote.kind
        if kind is BallotKind.CANDIDATE:
            if vote.candidate_id in counts:
                counts[vote.candidate_id] += 1
            else:
                orphaned += 1
        elif kind is BallotKind.WRITE_IN:
            key = normalize_write_in(vote.write_in_name)
            write_ins[key] = write_ins.get(key, 0) + 1
        elif kind is BallotKind.NULL:
            null += 1
        else:
            blank += 1

    # sorted() is stable, ties keep list order
    ranked = sorted(listed, key=lambda c: counts[c.id], reverse=True)
    ranked_write_ins = sorted(write_ins.items(), key=lambda item: item[1], reverse=True)

    return Tally(
        election_id=election.id,
        total_votes=total,
        candidates=[
            CandidateResult(
                candidate_id=c.id,
                name=c.full_name,
                partido_politico=c.partido_politico,
                cargo=c.cargo,
                count=counts[c.id],
                percentage=percentage(counts[c.id], total),
            )
            for c in ranked
        ],
        blank=BucketResult(count=blank, percentage=percentage(blank, total)),
        null=BucketResult(count=null, percentage=percentage(null, total)),
        write_ins=[
            WriteInResult(name=name, count=count, percentage=percentage(count, total))
            for name, count in ranked_write_ins
        ],
        orphaned=BucketResult(count=orphaned, percentage=percentage(orphaned, total)),
    )
