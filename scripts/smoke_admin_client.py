#!/usr/bin/env python3
"""
Dynamic smoke test: hosted privileged functions client.

What it validates:
- JSON payloads and function names of approve/reject/trigger calls
- rejection without a reason fails locally without a request
- HTTP error statuses, non-JSON bodies, timeouts and refused connections
  come back as {"success": False, "error": ...}

Run:
  python3 scripts/smoke_admin_client.py
"""

from __future__ import annotations

import asyncio
import dataclasses
import sys
from pathlib import Path
from typing import Any


def _setup_import_path() -> None:
    for candidate in (
        Path(__file__).resolve().parents[1] / "src",
        Path.cwd() / "src",
    ):
        if candidate.exists():
            sys.path.insert(0, str(candidate))
            return


_setup_import_path()

from aiohttp import test_utils, web  # noqa: E402

from admin_client import PrivilegedFunctionsClient  # noqa: E402
from config import CFG  # noqa: E402


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _functions_app(calls: list[tuple[str, Any, str]]) -> web.Application:
    async def record(request: web.Request) -> Any:
        body = await request.json()
        calls.append((request.path.lstrip("/"), body, request.headers.get("Accept", "")))
        return body

    async def approve(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response({"success": True, "message": "approved"})

    async def reject(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response({"success": True})

    async def trigger(request: web.Request) -> web.Response:
        await record(request)
        return web.json_response({"success": True, "level1Updated": 3, "level2Updated": 1})

    app = web.Application()
    app.router.add_post("/approveVerification", approve)
    app.router.add_post("/rejectVerification", reject)
    app.router.add_post("/triggerSubscriptionReset", trigger)
    return app


def _broken_app() -> web.Application:
    async def forbidden(request: web.Request) -> web.Response:
        return web.json_response({"error": "Not an admin"}, status=403)

    async def html(request: web.Request) -> web.Response:
        return web.Response(text="<html>oops</html>", status=502, content_type="text/html")

    async def slow(request: web.Request) -> web.Response:
        await asyncio.sleep(1.0)
        return web.json_response({"success": True})

    app = web.Application()
    app.router.add_post("/approveVerification", forbidden)
    app.router.add_post("/rejectVerification", html)
    app.router.add_post("/triggerSubscriptionReset", slow)
    return app


async def _check_happy_path() -> None:
    calls: list[tuple[str, Any, str]] = []
    async with test_utils.TestServer(_functions_app(calls)) as server:
        client = PrivilegedFunctionsClient(CFG, base_url=str(server.make_url("/")), timeout_sec=5)

        approved = await client.approve_verification("admin-1", "biz-1")
        _assert(approved == {"success": True, "message": "approved"}, f"approve response: {approved}")

        missing_reason = await client.reject_verification("admin-1", "biz-1", "   ")
        _assert(
            missing_reason == {"success": False, "error": "Rejection reason is required"},
            f"empty reason: {missing_reason}",
        )

        rejected = await client.reject_verification("admin-1", "biz-1", "  Expired ID  ")
        _assert(rejected["success"] is True, f"reject response: {rejected}")

        reset = await client.trigger_subscription_reset()
        _assert(reset["level1Updated"] == 3, f"trigger response: {reset}")

    _assert(
        [(name, body) for name, body, _ in calls]
        == [
            ("approveVerification", {"adminId": "admin-1", "userId": "biz-1"}),
            ("rejectVerification", {"adminId": "admin-1", "userId": "biz-1", "reason": "Expired ID"}),
            ("triggerSubscriptionReset", {}),
        ],
        f"unexpected calls: {calls}",
    )
    _assert(all(accept == "application/json" for _, _, accept in calls), "client must ask for JSON")


async def _check_failures() -> None:
    async with test_utils.TestServer(_broken_app()) as server:
        client = PrivilegedFunctionsClient(CFG, base_url=str(server.make_url("/")), timeout_sec=0.2)

        forbidden = await client.approve_verification("admin-1", "biz-1")
        _assert(forbidden == {"success": False, "error": "Not an admin"}, f"HTTP 403: {forbidden}")

        html = await client.reject_verification("admin-1", "biz-1", "reason")
        _assert(html == {"success": False, "error": "Unexpected response (HTTP 502)"}, f"non-JSON: {html}")

        slow = await client.trigger_subscription_reset()
        _assert(slow == {"success": False, "error": "Request timed out"}, f"timeout: {slow}")

    refused_cfg = dataclasses.replace(CFG, functions_base_url="http://127.0.0.1:1", functions_timeout_sec=2.0)
    refused = await PrivilegedFunctionsClient(refused_cfg).approve_verification("admin-1", "biz-1")
    _assert(refused["success"] is False and refused["error"], f"refused connection: {refused}")


async def _run_checks() -> None:
    await _check_happy_path()
    await _check_failures()


def main() -> None:
    asyncio.run(_run_checks())
    print("OK: admin client smoke passed.")


if __name__ == "__main__":
    main()
