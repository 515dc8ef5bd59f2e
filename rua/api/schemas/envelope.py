"""Response envelope models shared by every endpoint.

Every response body, success or failure, is one of these envelopes. Field
names are camelCase on the wire (``requestId``, ``pageSize``,
``totalPages``) and snake_case in Python.

Envelope invariants:
- ``success`` is true exactly when ``code`` lies in the success range
- ``data`` is only present on success
- ``errors`` is only present on failure

Paginated envelopes additionally guarantee ``len(items) <= pageSize`` and
``total >= len(items)``.
"""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from rua.core.exceptions import is_success_code


class ApiModel(BaseModel):
    """Base model for payloads that travel over the wire in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class FieldErrorDetail(ApiModel):
    """One failing field of a rejected request."""

    field: str | None = Field(
        default=None,
        description="Dotted path of the failing field, absent for whole-body errors",
        examples=["email"],
    )
    message: str = Field(
        ...,
        description="Why the field was rejected",
        examples=["value is not a valid email address"],
    )


class Envelope(ApiModel):
    """Fixed wrapper around every response body."""

    success: bool = Field(..., description="Whether the request succeeded")
    code: int = Field(
        ...,
        description="Business status code, independent of the HTTP status",
        examples=[20000, 40001],
    )
    message: str = Field(..., description="Human-readable outcome")
    timestamp: int = Field(
        ...,
        description="Milliseconds since the Unix epoch when the body was built",
    )
    request_id: str = Field(
        ...,
        description="Correlation id, equal to the X-Request-Id response header",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )
    data: Any | None = Field(default=None, description="Payload, success only")
    errors: list[FieldErrorDetail] | None = Field(
        default=None,
        description="Field-level failures, validation errors only",
    )
    version: str = Field(
        ...,
        description='Build version of the service, "unknown" when not stamped',
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "success": True,
                    "code": 20000,
                    "message": "Success",
                    "timestamp": 1718366400000,
                    "requestId": "550e8400-e29b-41d4-a716-446655440000",
                    "data": "RUA",
                    "version": "v1.4.0-3-gabc1234",
                },
                {
                    "success": False,
                    "code": 40001,
                    "message": "Invalid request body: email: Field required",
                    "timestamp": 1718366400000,
                    "requestId": "550e8400-e29b-41d4-a716-446655440001",
                    "errors": [{"field": "email", "message": "Field required"}],
                    "version": "v1.4.0-3-gabc1234",
                },
            ]
        }
    )

    @model_validator(mode="after")
    def check_outcome_consistency(self) -> Self:
        """Reject envelopes whose success flag, code and payload disagree."""
        if self.success != is_success_code(self.code):
            msg = f"success={self.success} contradicts business code {self.code}"
            raise ValueError(msg)
        if not self.success and self.data is not None:
            msg = "Failure envelopes never carry data"
            raise ValueError(msg)
        if self.success and self.errors is not None:
            msg = "Success envelopes never carry field errors"
            raise ValueError(msg)
        return self

    def to_wire(self) -> dict[str, Any]:
        """Dump the envelope as a camelCase JSON-ready dict.

        Optional members that do not apply to the outcome are left out
        entirely rather than sent as null.
        """
        exclude = {name for name in ("data", "errors") if getattr(self, name) is None}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class PaginatedEnvelope(Envelope):
    """Success envelope for one page of a listing."""

    items: list[Any] = Field(..., description="Records on this page, in order")
    total: int = Field(..., ge=0, description="Records across all pages")
    page: int = Field(..., ge=1, description="One-based page number")
    page_size: int = Field(..., ge=1, description="Maximum records per page")
    total_pages: int = Field(..., ge=0, description="Number of pages")

    @model_validator(mode="after")
    def check_page_bounds(self) -> Self:
        """Enforce the page size and total bounds on the items."""
        if len(self.items) > self.page_size:
            msg = f"{len(self.items)} items exceed page size {self.page_size}"
            raise ValueError(msg)
        if self.total < len(self.items):
            msg = f"total {self.total} is smaller than {len(self.items)} items"
            raise ValueError(msg)
        return self
