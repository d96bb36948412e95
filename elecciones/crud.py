import logging
import re
from typing import Dict, List, Optional, Tuple

from elecciones.errors import (
    CandidateInUse,
    CandidateNotFound,
    DuplicateVoterCode,
    ElectionHasVotes,
    ElectionNotFound,
    InvalidCredentials,
    OrganizationNotFound,
    OrganizationSlugTaken,
    VoterNotFound,
)
from elecciones.lifecycle import DateLike, evaluate_status, refresh_status
from elecciones.models.election_model import Candidate, Election
from elecciones.models.user_model import Organization, Role, User
from elecciones.models.vote_model import Vote
from elecciones.schemas import (
    CandidateCreate,
    ElectionCreate,
    ElectionUpdate,
    ImportIssue,
    OrganizationUpdate,
    OrganizationWithAdminCreate,
    VoterCreate,
    VoterImportRow,
    VoterUpdate,
)
from elecciones.security import hash_password, verify_password
from elecciones.storage import DuplicateRecord, Store, Transaction
from elecciones.validator import find_duplicate_codes

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    slug = re.sub(r"\s+", "-", name.strip().lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    return re.sub(r"-{2,}", "-", slug).strip("-")


# ---------------------------------------------------------------- organizations

def create_organization_with_admin(store: Store, data: OrganizationWithAdminCreate) -> Tuple[Organization, User]:
    """Create an organization and its first Admin as one unit."""
    org_doc = data.organization.model_dump()
    org_doc["slug"] = data.organization.slug or slugify(data.organization.name)
    admin_doc = data.admin.model_dump()
    admin_doc["password"] = hash_password(admin_doc["password"])
    admin_doc.update({"rol": Role.ADMIN.value, "ha_votado": []})

    def create(tx: Transaction) -> Tuple[Organization, User]:
        if tx.find("organizations", slug=org_doc["slug"]):
            raise OrganizationSlugTaken(slug=org_doc["slug"])
        org = Organization.model_validate({**org_doc, "id": tx.allocate_id("organizations")})
        tx.insert("organizations", org.to_document())
        admin = User.model_validate({**admin_doc, "id": tx.allocate_id("users"), "organizationId": org.id})
        tx.insert("users", admin.to_document())
        return org, admin

    try:
        org, admin = store.transactionally(create)
    except DuplicateRecord as e:
        raise OrganizationSlugTaken(slug=org_doc["slug"]) from e
    logger.info(f"Organization {org.slug} created with admin {admin.codigo}")
    return org, admin


def get_organization(store: Store, organization_id: str) -> Organization:
    record = store.get("organizations", organization_id)
    if record is None:
        raise OrganizationNotFound(organization_id=organization_id)
    return Organization.model_validate(record)


def update_organization(store: Store, organization_id: str, changes: OrganizationUpdate) -> Organization:
    get_organization(store, organization_id)
    store.update("organizations", organization_id, changes.model_dump(exclude_unset=True))
    return get_organization(store, organization_id)


def delete_organization(store: Store, organization_id: str) -> Dict[str, int]:
    """Delete an organization and everything scoped to it."""

    def cascade(tx: Transaction) -> Dict[str, int]:
        if tx.get("organizations", organization_id) is None:
            raise OrganizationNotFound(organization_id=organization_id)
        users = tx.find("users", organizationId=organization_id)
        for user in sorted(users, key=lambda u: u["id"]):
            # waits for any cast in flight on this user
            tx.get("users", user["id"], for_update=True)
        election_ids = [e["id"] for e in tx.find("elections", organizationId=organization_id)]
        deleted = {
            "votes": tx.delete_many("votes", organizationId=organization_id),
            "candidates": 0,
        }
        for election_id in election_ids:
            deleted["votes"] += tx.delete_many("votes", electionId=election_id)
            deleted["candidates"] += tx.delete_many("candidates", eleccion_id=election_id)
        deleted["elections"] = tx.delete_many("elections", organizationId=organization_id)
        deleted["users"] = tx.delete_many("users", organizationId=organization_id)
        deleted["organizations"] = tx.delete_many("organizations", id=organization_id)
        return deleted

    deleted = store.transactionally(cascade)
    logger.info(f"Organization {organization_id} deleted: {deleted}")
    return deleted


# ---------------------------------------------------------------- users

def get_user(store: Store, user_id: str) -> User:
    record = store.get("users", user_id)
    if record is None:
        raise VoterNotFound(voter_id=user_id)
    return User.model_validate(record)


def list_users(store: Store, organization_id: str, role: Optional[Role] = None) -> List[User]:
    filters = {"organizationId": organization_id}
    if role is not None:
        filters["rol"] = role.value
    return [User.model_validate(u) for u in store.find("users", **filters)]


def add_voter(store: Store, organization_id: str, data: VoterCreate) -> User:
    get_organization(store, organization_id)
    doc = data.model_dump()
    doc.update({"organizationId": organization_id, "rol": Role.ESTUDIANTE.value, "ha_votado": []})

    def create(tx: Transaction) -> User:
        if tx.find("users", organizationId=organization_id, codigo=data.codigo):
            raise DuplicateVoterCode(codigo=data.codigo)
        user = User.model_validate({**doc, "id": tx.allocate_id("users")})
        tx.insert("users", user.to_document())
        return user

    try:
        return store.transactionally(create)
    except DuplicateRecord as e:
        raise DuplicateVoterCode(codigo=data.codigo) from e


def _user_for_update(tx: Transaction, user_id: str, organization_id: Optional[str]) -> Dict:
    """Lock a user, treating one from another organization as missing."""
    current = tx.get("users", user_id, for_update=True)
    if current is None or (organization_id is not None and current.get("organizationId") != organization_id):
        raise VoterNotFound(voter_id=user_id)
    return current


def update_user(store: Store, user_id: str, changes: VoterUpdate, organization_id: Optional[str] = None) -> User:
    """Edit profile fields. ``ha_votado`` is only ever written by the ledger."""
    patch = changes.model_dump(exclude_unset=True)

    def edit(tx: Transaction) -> User:
        current = _user_for_update(tx, user_id, organization_id)
        code = patch.get("codigo")
        if code and code != current["codigo"]:
            if tx.find("users", organizationId=current.get("organizationId"), codigo=code):
                raise DuplicateVoterCode(codigo=code)
        updated = User.model_validate({**current, **patch})
        # store the normalized values, e.g. the lowercased email
        tx.update("users", user_id, updated.model_dump(mode="json", include=set(patch)))
        return updated

    try:
        return store.transactionally(edit)
    except DuplicateRecord as e:
        raise DuplicateVoterCode(codigo=patch.get("codigo")) from e


def delete_user(store: Store, user_id: str, organization_id: Optional[str] = None) -> None:
    def remove(tx: Transaction) -> None:
        # waits for a cast in flight on this user
        _user_for_update(tx, user_id, organization_id)
        tx.delete_many("users", id=user_id)

    store.transactionally(remove)
    logger.info(f"User {user_id} deleted")


def import_voters(
    store: Store, organization_id: str, rows: List[VoterImportRow]
) -> Tuple[List[User], List[ImportIssue]]:
    """Create students from already-parsed CSV rows, skipping duplicated codes."""
    get_organization(store, organization_id)

    def create(tx: Transaction) -> Tuple[List[User], List[ImportIssue]]:
        existing = [u["codigo"] for u in tx.find("users", organizationId=organization_id)]
        accepted, issues = find_duplicate_codes(rows, existing)
        created = []
        for row in accepted:
            doc = row.model_dump()
            doc.update({
                "id": tx.allocate_id("users"),
                "codigo": row.codigo.strip(),
                "organizationId": organization_id,
                "rol": Role.ESTUDIANTE.value,
                "ha_votado": [],
            })
            user = User.model_validate(doc)
            tx.insert("users", user.to_document())
            created.append(user)
        return created, issues

    created, issues = store.transactionally(create)
    logger.info(f"Imported {len(created)} voters into organization {organization_id}, skipped {len(issues)}")
    return created, issues


# ---------------------------------------------------------------- elections

def create_election(store: Store, organization_id: str, data: ElectionCreate, now: DateLike = None) -> Election:
    get_organization(store, organization_id)
    doc = data.model_dump(mode="json", exclude_none=True)
    doc["organizationId"] = organization_id
    doc["estado"] = evaluate_status(data.fecha_inicio, data.fecha_fin, now).value
    election_id = store.insert("elections", doc)
    logger.info(f"Election {election_id} created for organization {organization_id}")
    return Election.model_validate({**doc, "id": election_id})


def get_election(store: Store, election_id: str, now: DateLike = None) -> Election:
    record = store.get("elections", election_id)
    if record is None:
        raise ElectionNotFound(election_id=election_id)
    return refresh_status(Election.model_validate(record), now)


def list_elections(store: Store, organization_id: str, now: DateLike = None) -> List[Election]:
    return [refresh_status(Election.model_validate(e), now) for e in store.find("elections", organizationId=organization_id)]


def update_election(store: Store, election_id: str, changes: ElectionUpdate, now: DateLike = None) -> Election:
    current = get_election(store, election_id, now)
    patch = changes.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    merged = ElectionCreate.model_validate({**current.model_dump(), **patch})
    patch["estado"] = evaluate_status(merged.fecha_inicio, merged.fecha_fin, now).value
    store.update("elections", election_id, patch)
    return get_election(store, election_id, now)


def delete_election(store: Store, election_id: str) -> int:
    """Delete an election and its candidates; refused once it has votes."""

    def remove(tx: Transaction) -> int:
        if tx.get("elections", election_id) is None:
            raise ElectionNotFound(election_id=election_id)
        if tx.find("votes", electionId=election_id):
            raise ElectionHasVotes(election_id=election_id)
        removed = tx.delete_many("candidates", eleccion_id=election_id)
        tx.delete_many("elections", id=election_id)
        return removed

    return store.transactionally(remove)


# ---------------------------------------------------------------- candidates

def add_candidate(store: Store, election_id: str, data: CandidateCreate) -> Candidate:
    get_election(store, election_id)
    doc = data.model_dump()
    doc["eleccion_id"] = election_id
    candidate_id = store.insert("candidates", doc)
    return Candidate.model_validate({**doc, "id": candidate_id})


def list_candidates(store: Store, election_id: str) -> List[Candidate]:
    return [Candidate.model_validate(c) for c in store.find("candidates", eleccion_id=election_id)]


def get_candidate(store: Store, candidate_id: str) -> Candidate:
    record = store.get("candidates", candidate_id)
    if record is None:
        raise CandidateNotFound(candidate_id=candidate_id)
    return Candidate.model_validate(record)


def update_candidate(store: Store, candidate_id: str, data: CandidateCreate) -> Candidate:
    current = store.get("candidates", candidate_id)
    if current is None:
        raise CandidateNotFound(candidate_id=candidate_id)
    patch = data.model_dump(exclude_unset=True)
    store.update("candidates", candidate_id, patch)
    return Candidate.model_validate({**current, **patch})


def delete_candidate(store: Store, candidate_id: str) -> None:
    """Votes are permanent, so a candidate that received any cannot be removed."""

    def remove(tx: Transaction) -> None:
        candidate = tx.get("candidates", candidate_id)
        if candidate is None:
            raise CandidateNotFound(candidate_id=candidate_id)
        if tx.find("votes", electionId=candidate["eleccion_id"], candidateId=candidate_id):
            raise CandidateInUse(candidate_id=candidate_id)
        tx.delete_many("candidates", id=candidate_id)

    store.transactionally(remove)


# ---------------------------------------------------------------- votes

def list_votes(store: Store, election_id: str) -> List[Vote]:
    return [Vote.model_validate(v) for v in store.find("votes", electionId=election_id)]


def find_vote_by_receipt(store: Store, receipt: str) -> Optional[Vote]:
    records = store.find("votes", receipt=receipt.strip())
    return Vote.model_validate(records[0]) if records else None


# ---------------------------------------------------------------- auth

def authenticate(
    store: Store, codigo: str, password: Optional[str] = None, organization_id: Optional[str] = None
) -> User:
    """Students log in with their code alone; admins also need their password."""
    filters = {"codigo": codigo.strip()}
    if organization_id is not None:
        filters["organizationId"] = organization_id
    matches = store.find("users", **filters)
    if not matches and password:
        matches = store.find("users", email=codigo.strip().lower())
    if len(matches) != 1:
        raise InvalidCredentials()
    user = User.model_validate(matches[0])
    if user.rol.requires_password and not verify_password(password or "", user.password):
        logger.warning(f"Failed login for {user.rol.value} {user.codigo}")
        raise InvalidCredentials()
    return user


def change_password(store: Store, user_id: str, current_password: str, new_password: str) -> None:
    new_hash = hash_password(new_password)

    def change(tx: Transaction) -> None:
        record = tx.get("users", user_id, for_update=True)
        if record is None:
            raise VoterNotFound(voter_id=user_id)
        if not verify_password(current_password, record.get("password")):
            raise InvalidCredentials("La contraseña actual es incorrecta.")
        tx.update("users", user_id, {"password": new_hash})

    store.transactionally(change)
