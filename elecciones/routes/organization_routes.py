from fastapi import APIRouter, Depends

from elecciones import crud
from elecciones.database.connection import get_store
from elecciones.errors import ElectionError, http_error
from elecciones.models.user_model import Role
from elecciones.reports import participation_report
from elecciones.routes.dependencies import Claims, current_claims, organization_admin
from elecciones.schemas import (
    LoginRequest,
    OrganizationUpdate,
    OrganizationWithAdminCreate,
    PasswordChangeRequest,
    TokenOut,
    VoterCreate,
    VoterImportRequest,
    VoterUpdate,
)
from elecciones.security import create_access_token
from elecciones.storage import Store

router = APIRouter(prefix="/organization", tags=["Organization"])
auth_router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("", status_code=201)
def create_organization(payload: OrganizationWithAdminCreate, store: Store = Depends(get_store)):
    try:
        org, admin = crud.create_organization_with_admin(store, payload)
    except ElectionError as e:
        raise http_error(e) from e
    return {"organization": org.to_document(), "admin": admin.public_dict()}


@router.get("/{organization_id}")
def get_organization(organization_id: str, store: Store = Depends(get_store)):
    try:
        return crud.get_organization(store, organization_id).to_document()
    except ElectionError as e:
        raise http_error(e) from e


@router.patch("/{organization_id}", dependencies=[Depends(organization_admin)])
def update_organization(organization_id: str, changes: OrganizationUpdate, store: Store = Depends(get_store)):
    try:
        return crud.update_organization(store, organization_id, changes).to_document()
    except ElectionError as e:
        raise http_error(e) from e


@router.delete("/{organization_id}", dependencies=[Depends(organization_admin)])
def delete_organization(organization_id: str, store: Store = Depends(get_store)):
    try:
        deleted = crud.delete_organization(store, organization_id)
    except ElectionError as e:
        raise http_error(e) from e
    return {"message": "Organization deleted.", "deleted": deleted}


@router.get("/{organization_id}/voters", dependencies=[Depends(organization_admin)])
def list_voters(organization_id: str, store: Store = Depends(get_store)):
    voters = crud.list_users(store, organization_id, Role.ESTUDIANTE)
    return {"voters": [v.public_dict() for v in voters]}


@router.post("/{organization_id}/voters", status_code=201, dependencies=[Depends(organization_admin)])
def add_voter(organization_id: str, voter: VoterCreate, store: Store = Depends(get_store)):
    try:
        return crud.add_voter(store, organization_id, voter).public_dict()
    except ElectionError as e:
        raise http_error(e) from e


@router.patch("/{organization_id}/voters/{voter_id}", dependencies=[Depends(organization_admin)])
def update_voter(organization_id: str, voter_id: str, changes: VoterUpdate, store: Store = Depends(get_store)):
    try:
        return crud.update_user(store, voter_id, changes, organization_id=organization_id).public_dict()
    except ElectionError as e:
        raise http_error(e) from e


@router.delete("/{organization_id}/voters/{voter_id}", dependencies=[Depends(organization_admin)])
def delete_voter(organization_id: str, voter_id: str, store: Store = Depends(get_store)):
    try:
        crud.delete_user(store, voter_id, organization_id=organization_id)
    except ElectionError as e:
        raise http_error(e) from e
    return {"message": "Voter deleted."}


@router.post("/{organization_id}/voters/import", dependencies=[Depends(organization_admin)])
def import_voters(organization_id: str, payload: VoterImportRequest, store: Store = Depends(get_store)):
    try:
        created, skipped = crud.import_voters(store, organization_id, payload.rows)
    except ElectionError as e:
        raise http_error(e) from e
    return {
        "created": [u.public_dict() for u in created],
        "skipped": [issue.model_dump() for issue in skipped],
    }


@router.get("/{organization_id}/participation", dependencies=[Depends(organization_admin)])
def get_participation(organization_id: str, only_missing: bool = False, store: Store = Depends(get_store)):
    report = participation_report(
        crud.list_users(store, organization_id),
        crud.list_elections(store, organization_id),
        only_missing=only_missing,
    )
    return report.model_dump()


@auth_router.post("/login", response_model=TokenOut)
def login(credentials: LoginRequest, store: Store = Depends(get_store)):
    try:
        user = crud.authenticate(store, credentials.codigo, credentials.password, credentials.organization_id)
    except ElectionError as e:
        raise http_error(e) from e
    token = create_access_token({"sub": user.id, "rol": user.rol.value, "org": user.organization_id})
    return TokenOut(access_token=token)


@auth_router.get("/me")
def read_current_user(claims: Claims = Depends(current_claims), store: Store = Depends(get_store)):
    try:
        return crud.get_user(store, claims["sub"]).public_dict()
    except ElectionError as e:
        raise http_error(e) from e


@auth_router.post("/password")
def change_password(
    payload: PasswordChangeRequest, claims: Claims = Depends(current_claims), store: Store = Depends(get_store)
):
    try:
        crud.change_password(store, claims["sub"], payload.current_password, payload.new_password)
    except ElectionError as e:
        raise http_error(e) from e
    return {"message": "Contraseña actualizada."}
