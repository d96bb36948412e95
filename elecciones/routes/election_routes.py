from fastapi import APIRouter, Depends, HTTPException

from elecciones import crud
from elecciones.database.connection import get_store
from elecciones.errors import ElectionError, http_error
from elecciones.routes.dependencies import Claims, ensure_can_manage, organization_admin, require_admin
from elecciones.schemas import CandidateCreate, ElectionCreate, ElectionUpdate
from elecciones.storage import Store

router = APIRouter(prefix="/election", tags=["Election"])


def _ensure_manages_election(store: Store, claims: Claims, election_id: str) -> None:
    ensure_can_manage(claims, crud.get_election(store, election_id).organization_id)


def _ensure_manages_candidate(store: Store, claims: Claims, candidate_id: str) -> None:
    _ensure_manages_election(store, claims, crud.get_candidate(store, candidate_id).eleccion_id)


@router.post("/create", status_code=201, dependencies=[Depends(organization_admin)])
def create_election(organization_id: str, election: ElectionCreate, store: Store = Depends(get_store)):
    try:
        created = crud.create_election(store, organization_id, election)
    except ElectionError as e:
        raise http_error(e) from e
    return {"message": "Election created successfully!", "election": created.to_document()}


@router.get("/all")
def get_all_elections(organization_id: str, store: Store = Depends(get_store)):
    elections = crud.list_elections(store, organization_id)
    return {"elections": [e.to_document() for e in elections]}


@router.get("/{election_id}")
def get_election(election_id: str, store: Store = Depends(get_store)):
    try:
        election = crud.get_election(store, election_id)
    except ElectionError as e:
        raise http_error(e) from e
    return election.to_document()


@router.put("/{election_id}")
def update_election(
    election_id: str,
    changes: ElectionUpdate,
    store: Store = Depends(get_store),
    claims: Claims = Depends(require_admin),
):
    try:
        _ensure_manages_election(store, claims, election_id)
        election = crud.update_election(store, election_id, changes)
    except ElectionError as e:
        raise http_error(e) from e
    except ValueError as e:
        # the merged dates are out of order
        raise HTTPException(status_code=422, detail=str(e)) from e
    return election.to_document()


@router.delete("/{election_id}")
def delete_election(election_id: str, store: Store = Depends(get_store), claims: Claims = Depends(require_admin)):
    try:
        _ensure_manages_election(store, claims, election_id)
        removed = crud.delete_election(store, election_id)
    except ElectionError as e:
        raise http_error(e) from e
    return {"message": "Election deleted.", "candidates_deleted": removed}


@router.post("/{election_id}/candidates", status_code=201)
def add_candidate(
    election_id: str,
    candidate: CandidateCreate,
    store: Store = Depends(get_store),
    claims: Claims = Depends(require_admin),
):
    try:
        _ensure_manages_election(store, claims, election_id)
        created = crud.add_candidate(store, election_id, candidate)
    except ElectionError as e:
        raise http_error(e) from e
    return created.model_dump()


@router.get("/{election_id}/candidates")
def list_candidates(election_id: str, store: Store = Depends(get_store)):
    candidates = crud.list_candidates(store, election_id)
    return {"candidates": [c.model_dump() | {"full_name": c.full_name} for c in candidates]}


@router.put("/candidates/{candidate_id}")
def update_candidate(
    candidate_id: str,
    candidate: CandidateCreate,
    store: Store = Depends(get_store),
    claims: Claims = Depends(require_admin),
):
    try:
        _ensure_manages_candidate(store, claims, candidate_id)
        updated = crud.update_candidate(store, candidate_id, candidate)
    except ElectionError as e:
        raise http_error(e) from e
    return updated.model_dump()


@router.delete("/candidates/{candidate_id}")
def delete_candidate(candidate_id: str, store: Store = Depends(get_store), claims: Claims = Depends(require_admin)):
    try:
        _ensure_manages_candidate(store, claims, candidate_id)
        crud.delete_candidate(store, candidate_id)
    except ElectionError as e:
        raise http_error(e) from e
    return {"message": "Candidate deleted."}
