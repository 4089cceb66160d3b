"""
Supply Control API Client
HTTP client for administering controllers and authorizing supply changes.
"""

from __future__ import annotations

import os
from typing import Optional

import httpx

from .models import ApiErrorDetail, AuditEvent, ControllerInfo, RemainingQuota


class SupplyControlAPIError(Exception):
    """Raised when the API rejects a request."""

    def __init__(self, status_code: int, detail: ApiErrorDetail):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code} {detail.error}: {detail.message}")

    @property
    def code(self) -> str:
        return self.detail.error


def _amount(value: int | str) -> str:
    # Send amounts as decimal strings so uint256 values survive JSON
    return value if isinstance(value, str) else str(value)


class SupplyControlClient:
    """
    Python client for the Supply Control API.

    Example:
        ```python
        with SupplyControlClient(api_key="manager-token") as client:
            client.add_controller("minter-1", capacity=2000, refill_rate=50,
                                  whitelist=["treasury"])
            print(client.remaining_quota("minter-1").remaining)
        ```
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API server URL (default: localhost:8000)
            api_key: Bearer token identifying the caller
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or os.getenv("SUPPLYCONTROL_API_KEY")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> SupplyControlClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        response = self._client.request(method, path, **kwargs)
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {"error": "http_error", "message": response.text}
            raise SupplyControlAPIError(response.status_code, ApiErrorDetail.from_dict(body))
        return response.json()

    # =========================================================================
    # Health & Info
    # =========================================================================

    def health(self) -> dict:
        """Check API health status."""
        return self._request("GET", "/health")

    def is_healthy(self) -> bool:
        """Quick health check returning boolean."""
        try:
            return self.health().get("status") == "healthy"
        except (httpx.HTTPError, SupplyControlAPIError):
            return False

    def whoami(self) -> dict:
        """Identity and roles of the authenticated caller."""
        return self._request("GET", "/v1/whoami")

    # =========================================================================
    # Controllers
    # =========================================================================

    def list_controllers(self) -> list[str]:
        """Identities of all registered controllers."""
        return self._request("GET", "/v1/controllers").get("controllers", [])

    def get_controller(self, identity: str) -> ControllerInfo:
        """Configuration and quota state of a controller."""
        return ControllerInfo.from_dict(self._request("GET", f"/v1/controllers/{identity}"))

    def add_controller(
        self,
        identity: str,
        capacity: int | str,
        refill_rate: int | str,
        whitelist: Optional[list[str]] = None,
        allow_any_destination: bool = False,
    ) -> ControllerInfo:
        """
        Register a supply controller.

        Args:
            identity: Controller account
            capacity: Quota ceiling (integer, decimal string or "max")
            refill_rate: Units restored per second (0 disables limiting)
            whitelist: Initial destination accounts
            allow_any_destination: Skip the whitelist entirely
        """
        payload = {
            "identity": identity,
            "capacity": _amount(capacity),
            "refill_rate": _amount(refill_rate),
            "whitelist": whitelist or [],
            "allow_any_destination": allow_any_destination,
        }
        return ControllerInfo.from_dict(self._request("POST", "/v1/controllers", json=payload))

    def remove_controller(self, identity: str) -> None:
        self._request("DELETE", f"/v1/controllers/{identity}")

    def update_limit_config(self, identity: str, capacity: int | str, refill_rate: int | str) -> dict:
        """Replace a controller's capacity and refill rate."""
        payload = {"capacity": _amount(capacity), "refill_rate": _amount(refill_rate)}
        return self._request("PUT", f"/v1/controllers/{identity}/limit", json=payload)

    def update_destination_policy(self, identity: str, allow_any: bool) -> bool:
        """Toggle allow-any; returns the previous value."""
        data = self._request(
            "PUT",
            f"/v1/controllers/{identity}/destination-policy",
            json={"allow_any": allow_any},
        )
        return data.get("previous", False)

    def add_to_whitelist(self, identity: str, account: str) -> None:
        self._request("POST", f"/v1/controllers/{identity}/whitelist", json={"account": account})

    def remove_from_whitelist(self, identity: str, account: str) -> None:
        self._request("DELETE", f"/v1/controllers/{identity}/whitelist/{account}")

    def remaining_quota(self, identity: str, now: Optional[int] = None) -> RemainingQuota:
        """Quota the controller could use at ``now`` (server time by default)."""
        params = {"now": now} if now is not None else {}
        data = self._request("GET", f"/v1/controllers/{identity}/remaining", params=params)
        return RemainingQuota.from_dict(data)

    # =========================================================================
    # Ledger integration
    # =========================================================================

    def authorize(
        self,
        controller: str,
        amount: int | str,
        destination: str,
        action: str = "mint",
        now: Optional[int] = None,
    ) -> dict:
        """
        Authorize a mint or burn.

        Raises:
            SupplyControlAPIError: With code "quota_exceeded",
                "destination_not_allowed", "stale_timestamp", ...
        """
        payload = {
            "controller": controller,
            "amount": _amount(amount),
            "destination": destination,
            "action": action,
        }
        if now is not None:
            payload["now"] = now
        return self._request("POST", "/v1/authorize", json=payload)

    # =========================================================================
    # Roles & audit
    # =========================================================================

    def grant_role(self, identity: str, role: str) -> bool:
        return self._request("POST", f"/v1/roles/{identity}", json={"role": role}).get("granted", False)

    def revoke_role(self, identity: str, role: str) -> bool:
        return self._request("DELETE", f"/v1/roles/{identity}/{role}").get("revoked", False)

    def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent audit events, oldest first."""
        data = self._request("GET", "/v1/events", params={"limit": limit})
        return [AuditEvent.from_dict(e) for e in data.get("events", [])]
