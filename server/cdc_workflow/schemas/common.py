"""Common Pydantic schemas."""

from datetime import datetime, timezone
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _assume_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


# The store keeps naive UTC; on the wire every timestamp carries its offset
UTCDateTime = Annotated[datetime, AfterValidator(_assume_utc)]


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python; accepts either on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        """JSON-ready dict using the camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")
    valid_values: Optional[List[str]] = Field(None, description="Accepted values for a closed-set field")
    current_step: Optional[str] = Field(None, description="Booking step at the time of a rejected transition")
    allowed_transitions: Optional[List[str]] = Field(None, description="Steps reachable from current_step")


def problem_responses(*status_codes: int) -> dict:
    """OpenAPI ``responses`` entries documenting Problem Details bodies."""
    return {
        code: {"model": Problem, "content": {"application/problem+json": {}}}
        for code in status_codes
    }
