"""Tests for results aggregation."""
import pytest
from pydantic import ValidationError

from elecciones.results import aggregate_results, percentage
from tests.conftest import make_candidate, make_election, make_vote

ELECTION = make_election()
CANDIDATES = [make_candidate("c1"), make_candidate("c2")]


def sample_votes():
    return [
        make_vote(1, candidate_id="c1"),
        make_vote(2, candidate_id="c1"),
        make_vote(3, candidate_id="c2"),
        make_vote(4),
        make_vote(5, is_null_vote=True),
        make_vote(6, write_in_name="Bob"),
        make_vote(7, write_in_name=" bob "),
    ]


class TestAggregateResults:
    def test_buckets(self):
        tally = aggregate_results(ELECTION, CANDIDATES, sample_votes())

        assert tally.total_votes == 7
        assert [(c.candidate_id, c.count) for c in tally.candidates] == [("c1", 2), ("c2", 1)]
        assert tally.candidates[0].percentage == 28.57
        assert tally.candidates[1].percentage == 14.29
        assert tally.blank.count == 1
        assert tally.null.count == 1
        assert tally.write_in_counts() == {"bob": 2}
        assert tally.write_ins[0].percentage == 28.57
        assert tally.orphaned.count == 0

    def test_same_input_same_tally(self):
        votes = sample_votes()
        assert aggregate_results(ELECTION, CANDIDATES, votes) == aggregate_results(ELECTION, CANDIDATES, votes)

    def test_buckets_add_up(self):
        votes = sample_votes() + [make_vote(8, candidate_id="gone")]
        tally = aggregate_results(ELECTION, CANDIDATES, votes)
        assert tally.bucket_total() == tally.total_votes == 8

    def test_no_votes(self):
        tally = aggregate_results(ELECTION, CANDIDATES, [])
        assert tally.total_votes == 0
        assert all(c.count == 0 and c.percentage == 0.0 for c in tally.candidates)
        assert tally.blank.percentage == 0.0
        assert tally.write_ins == []

    def test_ties_keep_list_order(self):
        candidates = [make_candidate("c1"), make_candidate("c2"), make_candidate("c3")]
        votes = [make_vote(1, candidate_id="c3"), make_vote(2, candidate_id="c2")]
        tally = aggregate_results(ELECTION, candidates, votes)
        assert [c.candidate_id for c in tally.candidates] == ["c2", "c3", "c1"]

    def test_removed_candidate_is_orphaned(self):
        votes = [make_vote(1, candidate_id="c1"), make_vote(2, candidate_id="deleted")]
        tally = aggregate_results(ELECTION, CANDIDATES, votes)
        assert tally.orphaned.count == 1
        assert tally.orphaned.percentage == 50.0
        assert tally.blank.count == 0

    def test_other_elections_ignored(self):
        votes = [make_vote(1, candidate_id="c1"), make_vote(2, election_id="e2", candidate_id="c1")]
        candidates = CANDIDATES + [make_candidate("c9", election_id="e2")]
        tally = aggregate_results(ELECTION, candidates, votes)
        assert tally.total_votes == 1
        assert [c.candidate_id for c in tally.candidates] == ["c1", "c2"]

    def test_candidate_names(self):
        candidates = [make_candidate("c1", primer_nombre="Luis", primer_apellido="Pérez", cargo="Presidente")]
        tally = aggregate_results(ELECTION, candidates, [])
        assert tally.candidates[0].name == "Luis Pérez"
        assert tally.candidates[0].cargo == "Presidente"


def test_percentage_rounding():
    assert percentage(1, 3) == 33.33
    assert percentage(2, 3) == 66.67
    assert percentage(5, 0) == 0.0


def test_vote_with_two_kinds_rejected():
    with pytest.raises(ValidationError):
        make_vote(1, candidate_id="c1", is_null_vote=True)
