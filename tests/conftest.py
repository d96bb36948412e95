"""Shared test fixtures and record builders."""
from datetime import date, datetime, timedelta

import pytest

from elecciones.models import Candidate, Election, User, Vote
from elecciones.storage import MemoryStore

NOW = datetime(2025, 6, 15, 10, 30)


def day(offset: int, base: date = NOW.date()) -> str:
    return (base + timedelta(days=offset)).isoformat()


def election_doc(id="e1", organization_id="org1", start=None, end=None, **overrides) -> dict:
    doc = {
        "id": id,
        "organizationId": organization_id,
        "nombre": "Consejo Estudiantil",
        "fecha_inicio": start or day(-5),
        "fecha_fin": end or day(5),
        "estado": "Próxima",
        "resultados_publicos": False,
    }
    doc.update(overrides)
    return doc


def voter_doc(id="v1", organization_id="org1", codigo=None, **overrides) -> dict:
    doc = {
        "id": id,
        "organizationId": organization_id,
        "codigo": codigo or f"2025-{id}",
        "rol": "Estudiante",
        "ha_votado": [],
        "primer_nombre": "Ana",
        "segundo_nombre": "María",
        "primer_apellido": "García",
        "segundo_apellido": "López",
        "curso": "Décimo EGB",
        "paralelo": "A",
    }
    doc.update(overrides)
    return doc


def candidate_doc(id, election_id="e1", **overrides) -> dict:
    doc = {"id": id, "eleccion_id": election_id, "primer_nombre": id.upper(), "partido_politico": "Lista A"}
    doc.update(overrides)
    return doc


def make_election(**kwargs) -> Election:
    return Election.model_validate(election_doc(**kwargs))


def make_voter(**kwargs) -> User:
    return User.model_validate(voter_doc(**kwargs))


def make_candidate(id, election_id="e1", **overrides) -> Candidate:
    return Candidate.model_validate(candidate_doc(id, election_id, **overrides))


def make_vote(n: int, election_id="e1", **ballot) -> Vote:
    return Vote(
        id=f"vote{n}",
        organization_id="org1",
        election_id=election_id,
        voter_id=f"v{n}",
        timestamp=f"2025-06-15T10:{n:02d}:00+00:00",
        receipt=f"rcpt-{n}",
        **ballot,
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def seeded_store(store):
    """One organization with an active election, two candidates and three voters."""
    store.insert("organizations", {"id": "org1", "name": "UEMOL", "slug": "uemol", "primaryColor": "#0bacfa"})
    store.insert("elections", election_doc())
    store.insert("candidates", candidate_doc("c1"))
    store.insert("candidates", candidate_doc("c2"))
    for voter_id in ("v1", "v2", "v3"):
        store.insert("users", voter_doc(voter_id))
    return store
