"""
Database Schemas for My Dev Archive

Each Pydantic model represents a collection in MongoDB. The collection name is the
lowercase of the class name (e.g., Certificate -> "certificate").

Facet fields (category, type, status, mode) are free strings on purpose: the admin
forms offer a fixed list of suggestions, but stored records may hold any value.
Unknown fields are ignored, so client-side tags such as ``dataType`` and
server-owned fields such as ``id`` or ``created_at`` never reach the store.
"""

import json
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator


# Course certificates
class Certificate(BaseModel):
    title: str = Field(..., min_length=1)
    issuer: Optional[str] = None
    image: Optional[str] = Field(None, description="Stored upload path or absolute URL")
    category: Optional[str] = Field(None, description="frontend, backend, devops, cloud, ...")


# Skill badges (same shape as certificates)
class Badge(BaseModel):
    title: str = Field(..., min_length=1)
    issuer: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None


# Internships / offer letters
class Internship(BaseModel):
    company: str = Field(..., min_length=1)
    role: Optional[str] = None
    duration: Optional[str] = None
    mode: Optional[str] = Field(None, description="Remote | Onsite | Hybrid")
    status: Optional[str] = Field(None, description="Active | Completed | ...")
    image: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    description: Optional[str] = None

    @field_validator("skills", mode="before")
    @classmethod
    def parse_skills(cls, v):
        # The admin form posts skills as a JSON array string
        if v is None or v == "":
            return []
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
            except ValueError:
                parsed = None
            v = parsed if isinstance(parsed, list) else v.split(",")
        if not isinstance(v, (list, tuple)):
            raise ValueError("skills must be a list or a comma-separated string")
        return [str(s).strip() for s in v if str(s).strip()]


# Community contributions (talks, workshops, open source, ...)
class Contribution(BaseModel):
    title: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    event: Optional[str] = None
    role: Optional[str] = None
    issuer: Optional[str] = None
    reference_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("referenceId", "reference_id"),
        serialization_alias="referenceId",
        description="Loose pointer to another record, never enforced",
    )
    description: Optional[str] = None
    image: str = Field(..., min_length=1)


# Certificates received for contributions. The admin form sends ``title`` while
# older records carry ``name``; readers fall back name -> title -> "Untitled".
class ContributionCert(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    type: Optional[str] = None
    event: Optional[str] = None
    role: Optional[str] = None
    issuer: Optional[str] = None
    description: Optional[str] = None
    image: str = Field(..., min_length=1)


# Admin accounts (no public signup)
class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., description="Bcrypt hash")


class LoginBody(BaseModel):
    email: EmailStr
    password: str
