import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class Role(str, Enum):
    ESTUDIANTE = "Estudiante"
    ADMIN = "Admin"
    SUPERADMIN = "SuperAdmin"

    @property
    def requires_password(self) -> bool:
        return _PASSWORD_REQUIRED[self]

    @property
    def is_voter(self) -> bool:
        return _VOTER_ROLES[self]


# One entry per role; adding a role without updating these fails at import.
_PASSWORD_REQUIRED = {
    Role.ESTUDIANTE: False,
    Role.ADMIN: True,
    Role.SUPERADMIN: True,
}
_VOTER_ROLES = {
    Role.ESTUDIANTE: True,
    Role.ADMIN: False,
    Role.SUPERADMIN: False,
}


def _check_role_tables(*tables: Dict[Role, bool]) -> None:
    for table in tables:
        missing = set(Role) - set(table)
        if missing:
            raise RuntimeError(f"Role table is missing {sorted(r.value for r in missing)}")


_check_role_tables(_PASSWORD_REQUIRED, _VOTER_ROLES)


SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class Organization(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    slug: str
    primary_color: str = Field("#0bacfa", alias="primaryColor")
    logo_url: Optional[str] = Field(None, alias="logoUrl")
    subscription: Optional[Dict[str, Any]] = None

    @field_validator("slug")
    @classmethod
    def _valid_slug(cls, value: str) -> str:
        if not SLUG_PATTERN.match(value):
            raise ValueError("slug must be lowercase letters, digits and single hyphens")
        return value

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    organization_id: Optional[str] = Field(None, alias="organizationId")
    codigo: str
    rol: Role = Role.ESTUDIANTE
    ha_votado: List[str] = Field(default_factory=list)
    primer_nombre: str = ""
    segundo_nombre: str = ""
    primer_apellido: str = ""
    segundo_apellido: str = ""
    curso: str = ""
    paralelo: str = ""
    email: Optional[EmailStr] = None
    password: Optional[str] = None

    @field_validator("ha_votado")
    @classmethod
    def _no_repeated_elections(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("ha_votado cannot list the same election twice")
        return value

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        # logins match emails case-insensitively
        return value.lower() if value else value

    @model_validator(mode="after")
    def _role_constraints(self):
        if self.organization_id is None and self.rol is not Role.SUPERADMIN:
            raise ValueError("only a SuperAdmin may exist outside an organization")
        if self.rol.requires_password and not self.password:
            raise ValueError(f"{self.rol.value} accounts need a password")
        return self

    @property
    def full_name(self) -> str:
        if self.rol is Role.ESTUDIANTE:
            parts = [self.primer_nombre, self.segundo_nombre, self.primer_apellido, self.segundo_apellido]
        else:
            parts = [self.primer_nombre, self.primer_apellido]
        return " ".join(p.strip() for p in parts if p and p.strip())

    def has_voted(self, election_id: str) -> bool:
        return election_id in self.ha_votado

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def public_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude={"password"})
