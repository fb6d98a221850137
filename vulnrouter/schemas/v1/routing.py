"""Routing rule API schemas."""

from pydantic import BaseModel, Field


class RoutingRuleRequest(BaseModel):
    channel: str = Field(min_length=1, max_length=200)
    min_severity: str = Field(min_length=1, max_length=32)


class RoutingRuleResponse(BaseModel):
    category: str
    channel: str
    min_severity: str


class RoutingConfigurationResponse(BaseModel):
    rules: list[RoutingRuleResponse]
