"""Operator routes for reading and replacing routing rules."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from vulnrouter.core.errors import InvalidRoutingRuleError
from vulnrouter.core.metrics import vulnrouter_config_updates_total
from vulnrouter.routing.store import FindingCategory, RoutingConfigStore, RoutingRule
from vulnrouter.schemas.v1.routing import (
    RoutingConfigurationResponse,
    RoutingRuleRequest,
    RoutingRuleResponse,
)
from vulnrouter.templates.config_page import form_field_names, render_config_html

logger = structlog.get_logger(__name__)

api_router = APIRouter(prefix="/routing-rules", tags=["routing"])
page_router = APIRouter(tags=["routing"])


def get_config_store(request: Request) -> RoutingConfigStore:
    return request.app.state.config_store


ConfigStore = Annotated[RoutingConfigStore, Depends(get_config_store)]


@api_router.get("", response_model=RoutingConfigurationResponse)
async def list_routing_rules(store: ConfigStore):
    """Current rule for every category."""
    snapshot = store.snapshot()
    return RoutingConfigurationResponse(
        rules=[
            RoutingRuleResponse(category=category, **rule.to_dict())
            for category, rule in sorted(snapshot.rules.items())
        ]
    )


@api_router.put("/{category}", response_model=RoutingRuleResponse)
async def replace_routing_rule(category: str, body: RoutingRuleRequest, store: ConfigStore):
    """Replace the rule for one category."""
    store.replace(category, RoutingRule(channel=body.channel, min_severity=body.min_severity))
    vulnrouter_config_updates_total.labels(category=category).inc()
    installed = store.snapshot().rule_for(category)
    return RoutingRuleResponse(category=category, **installed.to_dict())


@page_router.get("/config", response_class=HTMLResponse)
async def config_page(store: ConfigStore):
    return HTMLResponse(render_config_html(store.snapshot()))


@page_router.post("/config", response_class=HTMLResponse)
async def submit_config(request: Request, store: ConfigStore):
    """Apply the operator form. Both categories change together or not at all."""
    form = await request.form()
    rules: dict[str, RoutingRule] = {}
    for category in FindingCategory:
        channel_field, severity_field = form_field_names(category.value)
        rules[category.value] = RoutingRule(
            channel=str(form.get(channel_field, "")),
            min_severity=str(form.get(severity_field, "")),
        )

    try:
        store.replace_many(rules)
    except InvalidRoutingRuleError as exc:
        logger.warning("Rejected routing form submission", error=exc.message, details=exc.details)
        return HTMLResponse(
            render_config_html(store.snapshot(), error=exc.message),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    for category in rules:
        vulnrouter_config_updates_total.labels(category=category).inc()
    return RedirectResponse(url="/config", status_code=status.HTTP_303_SEE_OTHER)
