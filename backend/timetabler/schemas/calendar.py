from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from timetabler.models.academic_term import SubTermName


class AcademicYearBase(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    from_date: date
    to_date: date

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Academic year name cannot be empty")
        return trimmed

    @model_validator(mode="after")
    def validate_range(self) -> "AcademicYearBase":
        if self.from_date >= self.to_date:
            raise ValueError("from_date must be before to_date")
        return self


class AcademicYearCreate(AcademicYearBase):
    pass


class AcademicYearUpdate(AcademicYearBase):
    pass


class AcademicYearOut(AcademicYearBase):
    id: str
    is_current: bool
    term_ids: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SubTermIn(BaseModel):
    name: SubTermName
    description: str | None = Field(default=None, max_length=500)
    start_date: date
    end_date: date
    is_current: bool = False

    @model_validator(mode="after")
    def validate_range(self) -> "SubTermIn":
        if self.start_date >= self.end_date:
            raise ValueError(f"{self.name.value} start date must be before end date")
        return self


class SubTermOut(BaseModel):
    id: str
    name: SubTermName
    description: str | None = None
    start_date: date
    end_date: date
    is_current: bool

    model_config = {"from_attributes": True}


def _ensure_three_named_terms(terms: list[SubTermIn]) -> None:
    if {term.name for term in terms} != set(SubTermName):
        raise ValueError("Exactly three terms (1st Term, 2nd Term, 3rd Term) are required")


class AcademicTermCreate(BaseModel):
    academic_year_id: str = Field(min_length=1, max_length=36)
    terms: list[SubTermIn] = Field(min_length=3, max_length=3)

    @model_validator(mode="after")
    def validate_names(self) -> "AcademicTermCreate":
        _ensure_three_named_terms(self.terms)
        return self


class AcademicTermUpdate(BaseModel):
    academic_year_id: str | None = Field(default=None, min_length=1, max_length=36)
    terms: list[SubTermIn] | None = Field(default=None, min_length=3, max_length=3)

    @model_validator(mode="after")
    def validate_names(self) -> "AcademicTermUpdate":
        if self.terms is not None:
            _ensure_three_named_terms(self.terms)
        return self


class AcademicTermOut(BaseModel):
    id: str
    academic_year_id: str
    terms: list[SubTermOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ReconciliationOut(BaseModel):
    ran_at: datetime
    terms_updated: int
    links_purged: int
    errors: list[str] = Field(default_factory=list)


class SubmissionLinkCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1, max_length=500)
    expires_at: datetime


class SubmissionLinkOut(SubmissionLinkCreate):
    id: str

    model_config = {"from_attributes": True}
