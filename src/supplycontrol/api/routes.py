"""API routes for controller administration and mint/burn authorization."""

import time
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from supplycontrol.errors import MissingRoleError
from supplycontrol.quota import UINT256_MAX
from supplycontrol.registry import SupplyAction, parse_amount
from supplycontrol.roles import CallerContext, Role
from supplycontrol.service import SupplyControlService
from supplycontrol.api.security import get_caller

router = APIRouter()


def get_service(request: Request) -> SupplyControlService:
    return request.app.state.service


def _amount(value: int | str, field: str) -> int:
    try:
        return parse_amount(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=422, detail=f"{field} must be a non-negative integer or 'max'")


# --- Request Models ---

Amount = int | str


class AddControllerRequest(BaseModel):
    """Register a new supply controller."""
    identity: str = Field(..., description="Controller account")
    capacity: Amount = Field(..., description="Quota ceiling (decimal string, integer or 'max')")
    refill_rate: Amount = Field(..., description="Quota units restored per second, 0 disables limiting")
    whitelist: list[str] = Field(default_factory=list, description="Accounts the controller may target")
    allow_any_destination: bool = False


class LimitConfigRequest(BaseModel):
    """New limit configuration."""
    capacity: Amount
    refill_rate: Amount


class DestinationPolicyRequest(BaseModel):
    """Whether the controller may target any account."""
    allow_any: bool


class WhitelistEntryRequest(BaseModel):
    """Account to whitelist."""
    account: str


class AuthorizeRequest(BaseModel):
    """Ledger request to authorize a mint or burn."""
    controller: str = Field(..., description="Controller requesting the supply change")
    amount: Amount
    destination: str = Field(..., description="Account minted to or burned from")
    action: SupplyAction = SupplyAction.MINT
    now: int | None = Field(default=None, ge=0, description="Timestamp, defaults to server time")


class RoleGrantRequest(BaseModel):
    """Role to grant."""
    role: Role


# --- Controllers ---


@router.get("/controllers")
def list_controllers(
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """List registered controller identities."""
    controllers = service.registry.list_controllers()
    return {"controllers": controllers, "total": len(controllers)}


@router.post("/controllers", status_code=201)
def add_controller(
    body: AddControllerRequest,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Register a supply controller."""
    config = service.registry.add_controller(
        caller,
        body.identity,
        _amount(body.capacity, "capacity"),
        _amount(body.refill_rate, "refill_rate"),
        body.whitelist,
        body.allow_any_destination,
    )
    return config.to_dict()


@router.get("/controllers/{identity}")
def get_controller(
    identity: str,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Configuration and quota state of one controller."""
    return service.registry.get_controller_config(caller, identity).to_dict()


@router.delete("/controllers/{identity}")
def remove_controller(
    identity: str,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Remove a supply controller."""
    service.registry.remove_controller(caller, identity)
    return {"removed": identity}


@router.put("/controllers/{identity}/limit")
def update_limit_config(
    identity: str,
    body: LimitConfigRequest,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Replace a controller's capacity and refill rate."""
    config = service.registry.update_limit_config(
        caller,
        identity,
        _amount(body.capacity, "capacity"),
        _amount(body.refill_rate, "refill_rate"),
    )
    return {"identity": identity, "limit_config": config.to_dict()}


@router.put("/controllers/{identity}/destination-policy")
def update_destination_policy(
    identity: str,
    body: DestinationPolicyRequest,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Toggle whether a controller may target any account."""
    old_value = service.registry.update_destination_policy(caller, identity, body.allow_any)
    return {"identity": identity, "allow_any_destination": body.allow_any, "previous": old_value}


@router.post("/controllers/{identity}/whitelist", status_code=201)
def add_to_whitelist(
    identity: str,
    body: WhitelistEntryRequest,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Whitelist an account for a controller."""
    service.registry.add_to_whitelist(caller, identity, body.account)
    return {"identity": identity, "account": body.account}


@router.delete("/controllers/{identity}/whitelist/{account}")
def remove_from_whitelist(
    identity: str,
    account: str,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Remove an account from a controller's whitelist."""
    service.registry.remove_from_whitelist(caller, identity, account)
    return {"identity": identity, "removed": account}


@router.get("/controllers/{identity}/remaining")
def remaining_quota(
    identity: str,
    now: int | None = Query(default=None, ge=0, description="Timestamp, defaults to server time"),
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Quota the controller could use at the given time."""
    at = int(time.time()) if now is None else now
    remaining = service.registry.remaining_quota(caller, identity, at)
    return {
        "identity": identity,
        "now": at,
        "remaining": str(remaining),
        "unlimited": remaining == UINT256_MAX,
    }


# --- Ledger integration ---


@router.post("/authorize")
def authorize(
    body: AuthorizeRequest,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Authorize a mint or burn before the ledger applies it."""
    at = int(time.time()) if body.now is None else body.now
    amount = _amount(body.amount, "amount")
    service.registry.authorize(caller, body.controller, amount, body.destination, at, body.action)
    return {
        "authorized": True,
        "controller": body.controller,
        "amount": str(amount),
        "destination": body.destination,
        "action": body.action.value,
        "now": at,
    }


# --- Roles ---


@router.get("/whoami")
def whoami(caller: CallerContext = Depends(get_caller)) -> dict[str, Any]:
    """Identity and roles of the authenticated caller."""
    return {"identity": caller.identity, "roles": sorted(r.value for r in caller.roles)}


@router.post("/roles/{identity}", status_code=201)
def grant_role(
    identity: str,
    body: RoleGrantRequest,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Grant a role (default admin only)."""
    granted = service.role_book.grant_role(caller, identity, body.role)
    return {"identity": identity, "role": body.role.value, "granted": granted}


@router.delete("/roles/{identity}/{role}")
def revoke_role(
    identity: str,
    role: Role,
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Revoke a role (default admin only)."""
    revoked = service.role_book.revoke_role(caller, identity, role)
    return {"identity": identity, "role": role.value, "revoked": revoked}


# --- Audit ---


@router.get("/events")
def list_events(
    limit: int = Query(default=100, ge=1, le=1000),
    caller: CallerContext = Depends(get_caller),
    service: SupplyControlService = Depends(get_service),
) -> dict[str, Any]:
    """Recent audit events (inspectors and admins)."""
    if not (caller.has_role(Role.INSPECTOR) or caller.has_role(Role.DEFAULT_ADMIN)):
        raise MissingRoleError(caller.identity, Role.INSPECTOR.value)

    events = service.store.recent_events(limit)
    return {"events": events, "count": len(events)}
