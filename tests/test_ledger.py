"""Tests for the vote ledger and its concurrency guarantees."""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from elecciones import crud
from elecciones.errors import AlreadyVoted, StoreUnavailable, VoterNotFound
from elecciones.ledger import VoteLedger
from elecciones.models import BlankBallot, CandidateBallot, NullBallot, WriteInBallot
from elecciones.receipts import verify_receipt
from elecciones.storage import _MemoryTransaction
from tests.conftest import election_doc

FIXED = datetime(2025, 6, 15, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def ledger(seeded_store):
    return VoteLedger(seeded_store, clock=lambda: FIXED)


class TestCast:
    def test_records_vote_and_marks_voter(self, ledger, seeded_store):
        result = ledger.cast("v1", "org1", "e1", CandidateBallot(candidate_id="c1"))

        assert result.vote.candidate_id == "c1"
        assert result.vote.timestamp == FIXED.isoformat()
        assert result.updated_voter.ha_votado == ["e1"]
        assert seeded_store.get("users", "v1")["ha_votado"] == ["e1"]
        stored = seeded_store.find("votes", electionId="e1", voterId="v1")
        assert len(stored) == 1
        assert stored[0]["receipt"] == result.vote.receipt
        assert stored[0]["candidateId"] == "c1"

    def test_receipt_matches_vote(self, ledger):
        vote = ledger.cast("v1", "org1", "e1", BlankBallot()).vote
        assert verify_receipt(vote.receipt, "e1", "v1", vote.id)

    def test_stored_shapes(self, ledger, seeded_store):
        ledger.cast("v1", "org1", "e1", BlankBallot())
        ledger.cast("v2", "org1", "e1", NullBallot())
        ledger.cast("v3", "org1", "e1", WriteInBallot(name="  Bob  "))
        by_voter = {v["voterId"]: v for v in seeded_store.find("votes")}

        assert by_voter["v1"]["candidateId"] is None
        assert "isNullVote" not in by_voter["v1"]
        assert "writeInName" not in by_voter["v1"]
        assert by_voter["v2"]["isNullVote"] is True
        assert by_voter["v3"]["writeInName"] == "Bob"

    def test_unknown_voter(self, ledger, seeded_store):
        with pytest.raises(VoterNotFound):
            ledger.cast("ghost", "org1", "e1", BlankBallot())
        assert seeded_store.find("votes") == []

    def test_second_vote_rejected(self, ledger, seeded_store):
        first = ledger.cast("v1", "org1", "e1", BlankBallot())
        with pytest.raises(AlreadyVoted):
            ledger.cast("v1", "org1", "e1", CandidateBallot(candidate_id="c2"))
        votes = seeded_store.find("votes")
        assert [v["receipt"] for v in votes] == [first.vote.receipt]
        assert seeded_store.get("users", "v1")["ha_votado"] == ["e1"]

    def test_other_election_still_open_to_voter(self, ledger, seeded_store):
        seeded_store.insert("elections", election_doc(id="e2", nombre="Reina"))
        ledger.cast("v1", "org1", "e1", BlankBallot())
        result = ledger.cast("v1", "org1", "e2", BlankBallot())
        assert result.updated_voter.ha_votado == ["e1", "e2"]

    def test_failure_mid_transaction_leaves_nothing(self, ledger, seeded_store, monkeypatch):
        def fail(self, collection, record_id, patch):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(_MemoryTransaction, "update", fail)
        with pytest.raises(RuntimeError):
            ledger.cast("v1", "org1", "e1", BlankBallot())
        monkeypatch.undo()

        assert seeded_store.find("votes") == []
        assert seeded_store.get("users", "v1")["ha_votado"] == []
        # and the voter can still vote afterwards
        ledger.cast("v1", "org1", "e1", BlankBallot())

    def test_receipt_collision_is_retryable(self, ledger, seeded_store, monkeypatch):
        monkeypatch.setattr("elecciones.ledger.make_receipt", lambda *args: "rcpt-same")
        ledger.cast("v1", "org1", "e1", BlankBallot())
        with pytest.raises(StoreUnavailable):
            ledger.cast("v2", "org1", "e1", BlankBallot())
        assert len(seeded_store.find("votes")) == 1
        assert seeded_store.get("users", "v2")["ha_votado"] == []

    def test_find_vote(self, ledger):
        assert ledger.find_vote("e1", "v1") is None
        vote = ledger.cast("v1", "org1", "e1", BlankBallot()).vote
        assert ledger.find_vote("e1", "v1") == vote

    def test_result_payload(self, ledger):
        payload = ledger.cast("v1", "org1", "e1", BlankBallot()).to_dict()
        assert payload["vote"]["electionId"] == "e1"
        assert payload["updatedVoter"]["ha_votado"] == ["e1"]
        assert "password" not in payload["updatedVoter"]


class TestConcurrency:
    def test_simultaneous_casts_record_one_vote(self, ledger, seeded_store):
        attempts = 12
        barrier = threading.Barrier(attempts)

        def cast(i):
            barrier.wait()
            try:
                return ledger.cast("v1", "org1", "e1", CandidateBallot(candidate_id="c1" if i % 2 else "c2"))
            except AlreadyVoted as e:
                return e

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            outcomes = list(pool.map(cast, range(attempts)))

        rejected = [o for o in outcomes if isinstance(o, AlreadyVoted)]
        assert len(rejected) == attempts - 1
        assert len(seeded_store.find("votes", electionId="e1", voterId="v1")) == 1
        assert seeded_store.get("users", "v1")["ha_votado"] == ["e1"]

    def test_same_voter_different_elections(self, ledger, seeded_store):
        seeded_store.insert("elections", election_doc(id="e2"))
        barrier = threading.Barrier(2)

        def cast(election_id):
            barrier.wait()
            return ledger.cast("v1", "org1", election_id, BlankBallot())

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(cast, ["e1", "e2"]))

        assert {r.vote.election_id for r in results} == {"e1", "e2"}
        assert sorted(seeded_store.get("users", "v1")["ha_votado"]) == ["e1", "e2"]
        assert len(seeded_store.find("votes", voterId="v1")) == 2

    def test_other_voters_are_not_blocked(self, seeded_store):
        inside = threading.Event()
        release = threading.Event()

        def stalled_clock():
            inside.set()
            release.wait(5)
            return FIXED

        slow = VoteLedger(seeded_store, clock=stalled_clock)
        fast = VoteLedger(seeded_store, clock=lambda: FIXED)
        worker = threading.Thread(target=slow.cast, args=("v1", "org1", "e1", BlankBallot()))
        worker.start()
        try:
            assert inside.wait(5)
            # v1's transaction is open and holding its record
            result = fast.cast("v2", "org1", "e1", BlankBallot())
            assert result.updated_voter.ha_votado == ["e1"]
        finally:
            release.set()
            worker.join(5)
        assert len(seeded_store.find("votes", electionId="e1")) == 2

    def test_voter_delete_waits_for_cast_in_flight(self, seeded_store):
        inside = threading.Event()
        release = threading.Event()
        outcome = {}

        def stalled_clock():
            inside.set()
            release.wait(5)
            return FIXED

        def slow_cast():
            outcome["cast"] = VoteLedger(seeded_store, clock=stalled_clock).cast("v1", "org1", "e1", BlankBallot())

        worker = threading.Thread(target=slow_cast)
        deleter = threading.Thread(target=crud.delete_user, args=(seeded_store, "v1"))
        worker.start()
        try:
            assert inside.wait(5)
            deleter.start()
            deleter.join(0.2)
            # v1's record is held by the open cast
            assert deleter.is_alive()
        finally:
            release.set()
            worker.join(5)
            deleter.join(5)

        assert outcome["cast"].updated_voter.ha_votado == ["e1"]
        assert seeded_store.get("users", "v1") is None
        assert len(seeded_store.find("votes", voterId="v1")) == 1

    def test_cast_after_voter_delete(self, ledger, seeded_store):
        crud.delete_user(seeded_store, "v1")
        with pytest.raises(VoterNotFound):
            ledger.cast("v1", "org1", "e1", BlankBallot())
        assert seeded_store.find("votes") == []
