"""Typed failures raised by the voting core.

Every error carries a stable ``code`` and a user-facing Spanish ``message``.
Routes turn them into ``HTTPException`` with :func:`http_error`; only
:class:`StoreUnavailable` is ``retryable``.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException


class ElectionError(Exception):
    code = "election_error"
    message = "Ocurrió un error inesperado."
    status_code = 400
    retryable = False

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ElectionNotActive(ElectionError):
    code = "election_not_active"
    message = "La elección no está activa. Solo se puede votar mientras está en curso."
    status_code = 403


class AlreadyVoted(ElectionError):
    code = "already_voted"
    message = "Ya registraste tu voto en esta elección."
    status_code = 409


class OptionDisabled(ElectionError):
    code = "option_disabled"
    message = "Esta opción de voto no está habilitada para la elección."
    status_code = 422


class InvalidCandidate(ElectionError):
    code = "invalid_candidate"
    message = "El candidato seleccionado no pertenece a esta elección."
    status_code = 422


class EmptyWriteIn(ElectionError):
    code = "empty_write_in"
    message = "Por favor ingrese un nombre para el candidato."
    status_code = 422


class VoterNotFound(ElectionError):
    code = "voter_not_found"
    message = "No se encontró al votante."
    status_code = 404


class StoreUnavailable(ElectionError):
    code = "store_unavailable"
    message = "El servicio de votación no está disponible. Intente nuevamente en unos momentos."
    status_code = 503
    retryable = True


class ElectionNotFound(ElectionError):
    code = "election_not_found"
    message = "No se encontró la elección."
    status_code = 404


class OrganizationNotFound(ElectionError):
    code = "organization_not_found"
    message = "No se encontró la organización."
    status_code = 404


class CandidateNotFound(ElectionError):
    code = "candidate_not_found"
    message = "No se encontró el candidato."
    status_code = 404


class CandidateInUse(ElectionError):
    code = "candidate_in_use"
    message = "No se puede eliminar un candidato que ya recibió votos."
    status_code = 409


class ElectionHasVotes(ElectionError):
    code = "election_has_votes"
    message = "No se puede eliminar una elección que ya tiene votos registrados."
    status_code = 409


class DuplicateVoterCode(ElectionError):
    code = "duplicate_voter_code"
    message = "Ya existe un usuario con ese código en la organización."
    status_code = 409


class OrganizationSlugTaken(ElectionError):
    code = "organization_slug_taken"
    message = "Ya existe una organización con ese identificador."
    status_code = 409


class InvalidCredentials(ElectionError):
    code = "invalid_credentials"
    message = "Código o contraseña incorrectos."
    status_code = 401


class Forbidden(ElectionError):
    code = "forbidden"
    message = "No tiene permiso para realizar esta acción."
    status_code = 403


class ResultsNotPublic(ElectionError):
    code = "results_not_public"
    message = "Los resultados de esta elección aún no son públicos."
    status_code = 403


def http_error(exc: ElectionError) -> HTTPException:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict(), headers=headers)
