from datetime import date
from typing import Optional
from fastapi import HTTPException
from pydantic import BaseModel, Field, ValidationError, model_validator

from app.models.item import CategoryType


class ValidatedCreateItem(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=2000)
    category: CategoryType
    location: str = Field(min_length=1, max_length=255)
    date_lost: Optional[date] = None
    date_found: Optional[date] = None

    @model_validator(mode="after")
    def check_single_date(self):
        # an item is either lost or found, never both
        if bool(self.date_lost) == bool(self.date_found):
            raise ValueError("Provide exactly one of date lost or date found")
        return self


class ValidatedUpdateItem(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    category: Optional[CategoryType] = None
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)


class ValidatedCreateClaim(BaseModel):
    proof_description: str = Field(min_length=1, max_length=2000)


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None

    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise HTTPException(status_code=400, detail="Date not parseable")


def validate_create_item_form(
    title: str,
    description: str,
    category: str,
    location: str,
    date_lost: Optional[str],
    date_found: Optional[str],
) -> ValidatedCreateItem:
    parsed_lost = _parse_date(date_lost)
    parsed_found = _parse_date(date_found)

    try:
        return ValidatedCreateItem(
            title=_strip(title),
            description=_strip(description),
            category=category,
            location=_strip(location),
            date_lost=parsed_lost,
            date_found=parsed_found,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )


def validate_update_item(updates: dict) -> ValidatedUpdateItem:
    allowed = set(ValidatedUpdateItem.model_fields)

    for field in updates:
        if field not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"Field '{field}' cannot be updated",
            )

    try:
        return ValidatedUpdateItem(**{k: _strip(v) for k, v in updates.items()})
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )


def validate_create_claim_form(proof_description: str) -> ValidatedCreateClaim:
    try:
        return ValidatedCreateClaim(proof_description=_strip(proof_description))
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )


class ValidatedUpdateProfile(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    department: Optional[str] = Field(default=None, min_length=1, max_length=255)
    student_id: Optional[str] = Field(default=None, min_length=1, max_length=50)


def validate_update_profile(updates: dict) -> ValidatedUpdateProfile:
    allowed = set(ValidatedUpdateProfile.model_fields)

    for field in updates:
        if field not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"Field '{field}' cannot be updated",
            )

    try:
        return ValidatedUpdateProfile(**{k: _strip(v) for k, v in updates.items()})
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )
