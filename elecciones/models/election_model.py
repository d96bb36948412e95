from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from elecciones.models.vote_model import BallotKind


class Status(str, Enum):
    PROXIMA = "Próxima"
    ACTIVA = "Activa"
    CERRADA = "Cerrada"


class Candidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    eleccion_id: str
    primer_nombre: str = ""
    segundo_nombre: str = ""
    primer_apellido: str = ""
    segundo_apellido: str = ""
    partido_politico: str = ""
    cargo: str = ""
    foto_url: str = ""
    descripcion: Optional[str] = None
    color_lista: Optional[str] = None
    logo_lista_url: Optional[str] = None

    @property
    def full_name(self) -> str:
        parts = [self.primer_nombre, self.segundo_nombre, self.primer_apellido, self.segundo_apellido]
        return " ".join(p.strip() for p in parts if p and p.strip())


class Election(BaseModel):
    """An election as stored.

    ``estado`` is whatever was last persisted and is only a display hint;
    :func:`elecciones.lifecycle.refresh_status` recomputes it from the dates.
    Dates stay raw strings here so that a malformed record still loads and
    evaluates as closed instead of failing to parse.

    The ballot toggles default to ``True``: records written before the
    toggles existed allow every option.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    organization_id: str = Field(..., alias="organizationId")
    nombre: str
    descripcion: Optional[str] = None
    fecha_inicio: str
    fecha_fin: str
    estado: Status = Status.PROXIMA
    resultados_publicos: bool = False
    allow_blank: bool = True
    allow_null: bool = True
    allow_write_in: bool = True

    def allows(self, kind: BallotKind) -> bool:
        policy = {
            BallotKind.CANDIDATE: True,
            BallotKind.BLANK: self.allow_blank,
            BallotKind.NULL: self.allow_null,
            BallotKind.WRITE_IN: self.allow_write_in,
        }
        return policy[BallotKind(kind)]

    def enabled_options(self) -> List[BallotKind]:
        return [kind for kind in BallotKind if self.allows(kind)]

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
