"""Tests for the casting entry point and its retry policy."""
import pytest

from elecciones.errors import (
    AlreadyVoted,
    ElectionNotActive,
    ElectionNotFound,
    OptionDisabled,
    StoreUnavailable,
    VoterNotFound,
)
from elecciones.models import BlankBallot, CandidateBallot, WriteInBallot
from elecciones.service import cast_vote, cast_vote_with_retry
from elecciones.storage import MemoryStore
from tests.conftest import NOW, candidate_doc, day, election_doc, voter_doc


class FlakyStore(MemoryStore):
    """Fails the next ``failures`` transactions, before or after they commit."""

    def __init__(self, failures=1, after_commit=False):
        super().__init__()
        self.failures = failures
        self.after_commit = after_commit
        self.calls = 0

    def transactionally(self, fn):
        self.calls += 1
        if self.failures and not self.after_commit:
            self.failures -= 1
            raise StoreUnavailable()
        result = super().transactionally(fn)
        if self.failures and self.after_commit:
            self.failures -= 1
            raise StoreUnavailable()
        return result


def seed(store):
    store._data["organizations"]["org1"] = {"id": "org1", "name": "UEMOL", "slug": "uemol"}
    store._data["elections"]["e1"] = election_doc()
    store._data["candidates"]["c1"] = candidate_doc("c1")
    store._data["users"]["v1"] = voter_doc("v1")
    store._indexes = store._build_indexes()
    return store


class TestCastVote:
    def test_write_in_disabled_then_blank(self, seeded_store):
        seeded_store.update("elections", "e1", {"allow_write_in": False})

        with pytest.raises(OptionDisabled):
            cast_vote(seeded_store, "v1", "org1", "e1", WriteInBallot(name="Bob"), now=NOW)
        assert seeded_store.find("votes") == []
        assert seeded_store.get("users", "v1")["ha_votado"] == []

        result = cast_vote(seeded_store, "v1", "org1", "e1", BlankBallot(), now=NOW)
        assert result.vote.candidate_id is None
        assert result.updated_voter.ha_votado == ["e1"]
        assert result.vote.receipt.startswith("rcpt-e1-v1-")

    def test_unknown_election(self, seeded_store):
        with pytest.raises(ElectionNotFound):
            cast_vote(seeded_store, "v1", "org1", "nope", BlankBallot(), now=NOW)

    def test_election_of_another_organization(self, seeded_store):
        seeded_store.insert("elections", election_doc(id="e2", organization_id="org2"))
        with pytest.raises(ElectionNotFound):
            cast_vote(seeded_store, "v1", "org1", "e2", BlankBallot(), now=NOW)

    def test_voter_of_another_organization(self, seeded_store):
        seeded_store.insert("users", voter_doc("x1", organization_id="org2"))
        with pytest.raises(VoterNotFound):
            cast_vote(seeded_store, "x1", "org1", "e1", BlankBallot(), now=NOW)

    def test_unknown_voter(self, seeded_store):
        with pytest.raises(VoterNotFound):
            cast_vote(seeded_store, "ghost", "org1", "e1", BlankBallot(), now=NOW)

    def test_closed_election(self, seeded_store):
        seeded_store.update("elections", "e1", {"fecha_inicio": day(-10), "fecha_fin": day(-1)})
        with pytest.raises(ElectionNotActive):
            cast_vote(seeded_store, "v1", "org1", "e1", BlankBallot(), now=NOW)

    def test_second_cast(self, seeded_store):
        cast_vote(seeded_store, "v1", "org1", "e1", CandidateBallot(candidate_id="c1"), now=NOW)
        with pytest.raises(AlreadyVoted):
            cast_vote(seeded_store, "v1", "org1", "e1", CandidateBallot(candidate_id="c2"), now=NOW)


class TestRetry:
    def test_retries_when_nothing_committed(self):
        store = seed(FlakyStore(failures=2))
        result = cast_vote_with_retry(store, "v1", "org1", "e1", BlankBallot(), now=NOW, attempts=3, wait_seconds=0)
        assert store.calls == 3
        assert len(store.find("votes")) == 1
        assert result.updated_voter.ha_votado == ["e1"]

    def test_returns_committed_vote_instead_of_casting_again(self):
        store = seed(FlakyStore(failures=1, after_commit=True))
        result = cast_vote_with_retry(store, "v1", "org1", "e1", BlankBallot(), now=NOW, attempts=3, wait_seconds=0)
        votes = store.find("votes")
        assert len(votes) == 1
        assert result.vote.receipt == votes[0]["receipt"]
        assert store.calls == 1

    def test_gives_up_after_attempts(self):
        store = seed(FlakyStore(failures=5))
        with pytest.raises(StoreUnavailable):
            cast_vote_with_retry(store, "v1", "org1", "e1", BlankBallot(), now=NOW, attempts=2, wait_seconds=0)
        assert store.calls == 2
        assert store.find("votes") == []

    def test_domain_errors_are_not_retried(self):
        store = seed(FlakyStore(failures=0))
        cast_vote_with_retry(store, "v1", "org1", "e1", BlankBallot(), now=NOW, wait_seconds=0)
        calls = store.calls
        with pytest.raises(AlreadyVoted):
            cast_vote_with_retry(store, "v1", "org1", "e1", BlankBallot(), now=NOW, wait_seconds=0)
        assert store.calls == calls
