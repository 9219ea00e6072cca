"""Domain model for identity claims asserted by the external verifier."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator

# Two-digit birth years below the pivot belong to the 2000s, the rest to the 1900s.
CENTURY_PIVOT = 50


class Gender(str, Enum):
    """Gender codes as printed in the passport MRZ."""

    MALE = "M"
    FEMALE = "F"
    UNSPECIFIED = "X"


def parse_birth_date(value: str) -> date:
    """Parse a ``DD-MM-YY`` date of birth.

    Args:
        value: Date string in DD-MM-YY format

    Returns:
        The birth date with the century inferred from the two-digit year

    Raises:
        ValueError: If the string is not a valid DD-MM-YY date
    """
    parts = value.split("-")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        raise ValueError(f"Date of birth must be DD-MM-YY, got {value!r}")

    day, month, year = (int(part) for part in parts)
    if len(parts[2]) != 2:
        raise ValueError(f"Date of birth year must have two digits, got {value!r}")

    full_year = 2000 + year if year < CENTURY_PIVOT else 1900 + year
    return date(full_year, month, day)


def calculate_age(date_of_birth: str, today: Optional[date] = None) -> int:
    """Calculate age in whole years from a ``DD-MM-YY`` date of birth.

    Args:
        date_of_birth: Date string in DD-MM-YY format
        today: Reference date, defaults to the current UTC date

    Returns:
        Age in years; negative when the inferred birth date is in the future
    """
    birth = parse_birth_date(date_of_birth)
    today = today or datetime.now(timezone.utc).date()

    age = today.year - birth.year
    # Birthday not reached yet this year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


class IdentityClaim(BaseModel):
    """Attributes an external verifier asserts after a successful proof check.

    Every attribute is optional: absence means "not disclosed", never "false".
    """

    nationality: Optional[str] = Field(None, description="ISO-3166 alpha-3 nationality")
    gender: Optional[Gender] = Field(None, description="Passport gender code")
    date_of_birth: Optional[str] = Field(None, description="Date of birth as DD-MM-YY")
    issuing_state: Optional[str] = Field(None, description="Passport issuing state")
    name: Optional[str] = Field(None, description="Holder name")
    expiry_date: Optional[str] = Field(None, description="Passport expiry date")
    passport_number: Optional[str] = Field(None, description="Passport number")

    class Config:
        """Pydantic model configuration."""
        frozen = True
        extra = "ignore"
        json_schema_extra = {
            "example": {
                "nationality": "JPN",
                "gender": "M",
                "date_of_birth": "15-06-00",
                "issuing_state": "JPN",
            }
        }

    @field_validator("nationality", "issuing_state", mode="before")
    @classmethod
    def _normalize_country(cls, value):
        if isinstance(value, str):
            value = value.strip().upper()
            return value or None
        return value

    @field_validator("gender", "name", "expiry_date", "passport_number", mode="before")
    @classmethod
    def _blank_is_absent(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("date_of_birth")
    @classmethod
    def _check_birth_date(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_birth_date(value)
        return value

    def age(self, today: Optional[date] = None) -> Optional[int]:
        """Age derived from the date of birth, None when it was not disclosed."""
        if self.date_of_birth is None:
            return None
        return calculate_age(self.date_of_birth, today)

    def present_attributes(self) -> Tuple[str, ...]:
        """Names of the attributes the verifier actually disclosed."""
        return tuple(
            name for name, value in self.model_dump().items() if value is not None
        )
