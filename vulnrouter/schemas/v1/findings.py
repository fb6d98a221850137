"""Inbound vulnerability finding schema."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Finding(BaseModel):
    """A single scan result as published by the scanner.

    Severity and category are kept as received; the routing engine decides
    what to do with values that fall outside the known sets. Missing or null
    fields decode as empty strings, which never route anywhere.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    severity: str = ""
    category: str = Field(default="", validation_alias=AliasChoices("type", "category"))
    description: str = ""
    package_name: str = ""
    resource_name: str = ""

    @field_validator(
        "severity", "category", "description", "package_name", "resource_name", mode="before"
    )
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v
