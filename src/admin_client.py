"""Client for the externally hosted privileged functions.

Verification approval/rejection and the subscription counter reset run
outside this service. Each call is a JSON POST that waits for the JSON
response; there are no retries. Transport problems are returned as
``{"success": False, "error": ...}`` instead of being raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from config import CFG, Config

logger = logging.getLogger(__name__)

USER_AGENT = "LoyaltyCore/1.0"


class PrivilegedFunctionsClient:
    def __init__(
        self,
        cfg: Config | None = None,
        *,
        base_url: str | None = None,
        timeout_sec: float | None = None,
    ) -> None:
        cfg = cfg or CFG
        self.base_url = (base_url or cfg.functions_base_url).rstrip("/")
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else cfg.functions_timeout_sec)

    async def _post(self, function_name: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/{function_name}"
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=headers) as resp:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    if not isinstance(data, dict):
                        logger.warning("%s: non-JSON response (status %s)", function_name, resp.status)
                        return {"success": False, "error": f"Unexpected response (HTTP {resp.status})"}
                    if resp.status >= 400:
                        logger.warning("%s: status %s: %s", function_name, resp.status, data.get("error"))
                        data.setdefault("success", False)
                        data.setdefault("error", f"HTTP {resp.status}")
                    return data
        except asyncio.TimeoutError:
            logger.error("%s: timeout after %.1fs", function_name, self.timeout_sec)
            return {"success": False, "error": "Request timed out"}
        except aiohttp.ClientError as error:
            logger.error("%s: request failed: %s", function_name, error)
            return {"success": False, "error": str(error) or "Request failed"}

    async def approve_verification(self, admin_id: str, user_id: str) -> dict[str, Any]:
        logger.info("Approving verification for %s (admin %s)", user_id, admin_id)
        return await self._post("approveVerification", {"adminId": admin_id, "userId": user_id})

    async def reject_verification(self, admin_id: str, user_id: str, reason: str) -> dict[str, Any]:
        if not str(reason or "").strip():
            return {"success": False, "error": "Rejection reason is required"}
        logger.info("Rejecting verification for %s (admin %s)", user_id, admin_id)
        return await self._post(
            "rejectVerification",
            {"adminId": admin_id, "userId": user_id, "reason": reason.strip()},
        )

    async def trigger_subscription_reset(self) -> dict[str, Any]:
        logger.info("Triggering hosted subscription counter reset")
        return await self._post("triggerSubscriptionReset", {})
