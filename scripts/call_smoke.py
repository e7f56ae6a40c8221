"""End-to-end smoke test of a video call between two existing Amora accounts.

Both accounts must be entitled to video calls (elite, or premium with video
chat enabled). The caller rings the callee, both sides exchange a fake
offer/answer pair and the caller hangs up.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from dataclasses import asdict, dataclass, field
from typing import Any

import httpx

from amora.client import AckError, RealtimeClient

logger = logging.getLogger(__name__)

FAKE_SDP = {"type": "offer", "sdp": "v=0\r\no=- 0 0 IN IP4 127.0.0.1\r\n"}


@dataclass(slots=True)
class SmokeResult:
    """Timings (seconds) for each signaling step."""

    ok: bool = False
    steps: dict[str, float] = field(default_factory=dict)
    error: str | None = None


def _login(http: httpx.Client, credentials: str) -> tuple[int, str]:
    login, _, password = credentials.partition(":")
    if not password:
        raise SystemExit(f"credentials must look like login:password (got {credentials!r})")
    response = http.post("/api/auth/login", json={"login": login, "password": password})
    response.raise_for_status()
    token = response.json()["access_token"]
    me = http.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    me.raise_for_status()
    return int(me.json()["id"]), token


def _ws_url(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url.removeprefix("https://").rstrip("/") + "/ws"
    return "ws://" + base_url.removeprefix("http://").rstrip("/") + "/ws"


async def run_smoke(args: argparse.Namespace) -> SmokeResult:
    with httpx.Client(base_url=args.base_url, timeout=args.timeout) as http:
        caller_id, caller_token = _login(http, args.caller)
        callee_id, callee_token = _login(http, args.callee)

    result = SmokeResult()
    url = _ws_url(args.base_url)
    logger.info("calling user %s as user %s via %s", callee_id, caller_id, url)

    async def step(name: str, awaitable: Any) -> Any:
        started = time.perf_counter()
        value = await awaitable
        result.steps[name] = round(time.perf_counter() - started, 4)
        logger.debug("%s took %.3fs", name, result.steps[name])
        return value

    async with RealtimeClient(url, caller_token) as caller, RealtimeClient(url, callee_token) as callee:
        try:
            await step("call", caller.start_call(callee_id, {"video": True}))
            await step("incoming", callee.next_event("rtc:incoming", timeout=args.timeout))
            await step("offer", caller.send_offer(callee_id, FAKE_SDP))
            await step("offer_relay", callee.next_event("rtc:offer", timeout=args.timeout))
            await step("answer", callee.send_answer(caller_id, {**FAKE_SDP, "type": "answer"}))
            await step("answer_relay", caller.next_event("rtc:answer", timeout=args.timeout))
            await step("hangup", caller.hang_up(callee_id))
            ended = await step("end_relay", callee.next_event("rtc:end", timeout=args.timeout))
        except AckError as exc:
            result.error = f"refused: {exc.code}"
        except asyncio.TimeoutError:
            result.error = "timed out waiting for the peer"
        else:
            result.ok = ended.get("reason") == "hangup"
            if not result.ok:
                result.error = f"unexpected end reason {ended.get('reason')!r}"

    logger.info("smoke test finished: %s", "ok" if result.ok else result.error)
    return result


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("base_url", help="API base URL, e.g. http://localhost:8000")
    parser.add_argument("--caller", required=True, help="Caller credentials as login:password")
    parser.add_argument("--callee", required=True, help="Callee credentials as login:password")
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Timeout for each signaling step (seconds)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the result as JSON for machine processing",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        result = asyncio.run(run_smoke(args))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("interrupted by user")
        return 130

    if args.json:
        print(json.dumps(asdict(result), indent=2, sort_keys=True))
    else:
        print("\n=== Call Smoke Summary ===")
        print(f"ok: {result.ok}")
        for name, seconds in result.steps.items():
            print(f"{name}: {seconds}s")
        if result.error:
            print(f"error: {result.error}")
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
