from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from elecciones import crud
from elecciones.database.connection import get_store
from elecciones.errors import ElectionError, Forbidden, ResultsNotPublic, http_error
from elecciones.lifecycle import results_are_public
from elecciones.receipts import verify_receipt
from elecciones.reports import audit_log
from elecciones.routes.dependencies import Claims, can_manage, current_claims, ensure_can_manage, require_admin
from elecciones.results import aggregate_results
from elecciones.schemas import CastVoteRequest
from elecciones.service import cast_vote_with_retry
from elecciones.storage import Store

vote_router = APIRouter(prefix="/vote", tags=["Vote"])


@vote_router.post("/cast", status_code=201)
def cast_vote(request: CastVoteRequest, store: Store = Depends(get_store), claims: Claims = Depends(current_claims)):
    """
    Casts a ballot. Returns the stored vote (with its receipt) and the
    voter as updated by the same transaction.
    """
    if claims["sub"] != request.voter_id:
        raise http_error(Forbidden(voter_id=request.voter_id))
    try:
        result = cast_vote_with_retry(
            store, request.voter_id, request.organization_id, request.election_id, request.ballot
        )
    except ElectionError as e:
        raise http_error(e) from e
    return {"message": "Voto registrado correctamente.", **result.to_dict()}


@vote_router.get("/check/{election_id}/{voter_id}")
def check_vote(
    election_id: str, voter_id: str, store: Store = Depends(get_store), claims: Claims = Depends(current_claims)
):
    """Whether the voter can still vote in this election."""
    try:
        election = crud.get_election(store, election_id)
        if claims["sub"] != voter_id and not can_manage(claims, election.organization_id):
            raise Forbidden(voter_id=voter_id)
        voter = crud.get_user(store, voter_id)
    except ElectionError as e:
        raise http_error(e) from e

    if voter.has_voted(election_id):
        return {"status": "already_voted", "estado": election.estado.value}
    return {"status": "not_voted", "estado": election.estado.value}


@vote_router.get("/results/{election_id}")
def get_results(election_id: str, store: Store = Depends(get_store), claims: Claims = Depends(require_admin)):
    try:
        election = crud.get_election(store, election_id)
        ensure_can_manage(claims, election.organization_id)
    except ElectionError as e:
        raise http_error(e) from e
    tally = aggregate_results(election, crud.list_candidates(store, election_id), crud.list_votes(store, election_id))
    return {"estado": election.estado.value, "results": tally.model_dump()}


@vote_router.get("/results/{election_id}/public")
def get_public_results(election_id: str, store: Store = Depends(get_store)):
    """Results as students see them: only for closed elections marked public."""
    try:
        election = crud.get_election(store, election_id)
        if not results_are_public(election):
            raise ResultsNotPublic(election_id=election_id)
    except ElectionError as e:
        raise http_error(e) from e
    tally = aggregate_results(election, crud.list_candidates(store, election_id), crud.list_votes(store, election_id))
    return {"estado": election.estado.value, "results": tally.model_dump()}


@vote_router.get("/receipt/{receipt}")
def lookup_receipt(receipt: str, store: Store = Depends(get_store)):
    """Confirms a receipt belongs to a stored vote without revealing the choice."""
    vote = crud.find_vote_by_receipt(store, receipt)
    if vote is None or not verify_receipt(vote.receipt, vote.election_id, vote.voter_id, vote.id):
        raise HTTPException(status_code=404, detail="Receipt not found.")
    return {"receipt": vote.receipt, "electionId": vote.election_id, "timestamp": vote.timestamp}


@vote_router.get("/audit/{election_id}")
def get_audit_log(
    election_id: str,
    search: Optional[str] = Query(None),
    store: Store = Depends(get_store),
    claims: Claims = Depends(require_admin),
):
    try:
        ensure_can_manage(claims, crud.get_election(store, election_id).organization_id)
    except ElectionError as e:
        raise http_error(e) from e
    votes = audit_log(crud.list_votes(store, election_id), search)
    return {"votes": [{"receipt": v.receipt, "timestamp": v.timestamp} for v in votes]}
