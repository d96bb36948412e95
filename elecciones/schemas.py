from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from elecciones.models.vote_model import Ballot


# --- Voting ---
class CastVoteRequest(BaseModel):
    voter_id: str
    organization_id: str
    election_id: str
    ballot: Ballot


# --- Organizations ---
class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=3)
    slug: Optional[str] = None
    primaryColor: str = "#0bacfa"
    logoUrl: Optional[str] = None
    subscription: Optional[dict] = None


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3)
    primaryColor: Optional[str] = None
    logoUrl: Optional[str] = None
    subscription: Optional[dict] = None


class AdminCreate(BaseModel):
    codigo: str = Field(..., min_length=1)
    primer_nombre: str
    primer_apellido: str = ""
    email: EmailStr
    password: str = Field(..., min_length=6)


class OrganizationWithAdminCreate(BaseModel):
    organization: OrganizationCreate
    admin: AdminCreate


# --- Voters ---
class VoterImportRow(BaseModel):
    codigo: str = Field(..., min_length=1)
    primer_nombre: str
    segundo_nombre: str = ""
    primer_apellido: str
    segundo_apellido: str = ""
    curso: str = ""
    paralelo: str = ""


class VoterCreate(VoterImportRow):
    pass


class VoterUpdate(BaseModel):
    codigo: Optional[str] = Field(None, min_length=1)
    primer_nombre: Optional[str] = None
    segundo_nombre: Optional[str] = None
    primer_apellido: Optional[str] = None
    segundo_apellido: Optional[str] = None
    curso: Optional[str] = None
    paralelo: Optional[str] = None
    email: Optional[EmailStr] = None


class ImportIssue(BaseModel):
    line: int
    codigo: str
    reason: Literal["existing", "repeated"]


class VoterImportRequest(BaseModel):
    rows: List[VoterImportRow]


# --- Elections ---
class ElectionCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    descripcion: Optional[str] = None
    fecha_inicio: date
    fecha_fin: date
    resultados_publicos: bool = False
    # None leaves the stored default (every option enabled) in place
    allow_blank: Optional[bool] = None
    allow_null: Optional[bool] = None
    allow_write_in: Optional[bool] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.fecha_inicio > self.fecha_fin:
            raise ValueError("fecha_inicio must not be after fecha_fin")
        return self


class ElectionUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    descripcion: Optional[str] = None
    fecha_inicio: Optional[date] = None
    fecha_fin: Optional[date] = None
    resultados_publicos: Optional[bool] = None
    allow_blank: Optional[bool] = None
    allow_null: Optional[bool] = None
    allow_write_in: Optional[bool] = None


class CandidateCreate(BaseModel):
    primer_nombre: str = Field(..., min_length=1)
    segundo_nombre: str = ""
    primer_apellido: str = ""
    segundo_apellido: str = ""
    partido_politico: str = ""
    cargo: str = ""
    foto_url: str = ""
    descripcion: Optional[str] = None
    color_lista: Optional[str] = None
    logo_lista_url: Optional[str] = None


# --- Auth ---
class LoginRequest(BaseModel):
    codigo: str = Field(..., min_length=1)
    password: Optional[str] = None
    organization_id: Optional[str] = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
