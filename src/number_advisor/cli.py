from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import ValidationError

from .config import Settings, get_settings
from .countries import country_name
from .logging import configure_logging
from .models import RecommendedNumber
from .proxy import ProxyOptions, ProxyResponse, handle_inquiry

GREETING = (
    "Describe your phone number requirements: SMS needs (1-way or 2-way), use case, "
    "business presence in the destination country, timeline, expected volume and "
    "voice call requirements. Type /quit to exit."
)


def add_detail_arguments(parser: argparse.ArgumentParser) -> None:
    """Filter flags shared by the chat and prompt-preview tools."""
    parser.add_argument("--sms-type", default="", help="e.g. 1-way, 2-way")
    parser.add_argument("--use-case", default="", help="e.g. marketing, support")
    parser.add_argument("--business-presence", default="", help="e.g. yes-local, no-local")
    parser.add_argument("--timeline", default="", help="e.g. asap, 1-3 weeks")
    parser.add_argument("--volume", default="", help="e.g. 1k-10k/day")
    parser.add_argument("--voice", default="", help="yes or no")
    parser.add_argument(
        "--country",
        action="append",
        default=[],
        help="ISO country code; repeat for several countries.",
    )


def details_from_args(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "smsType": args.sms_type,
        "useCase": args.use_case,
        "businessPresence": args.business_presence,
        "timeline": args.timeline,
        "volume": args.volume,
        "voiceRequired": args.voice,
        "selectedCountries": [c.strip().upper() for c in args.country if c.strip()],
    }


def format_numbers_table(numbers: Sequence[Any]) -> str:
    """Render recommended numbers as a fixed-width text table."""
    rows: list[RecommendedNumber] = []
    for item in numbers:
        try:
            rows.append(RecommendedNumber.model_validate(item))
        except ValidationError:
            continue
    if not rows:
        return ""

    header = ("Geo", "Type", "Status", "SMS", "Voice", "Considerations")
    cells = [
        (
            r.geo,
            r.type,
            r.status or "",
            "yes" if r.smsEnabled else "no",
            "yes" if r.voiceEnabled else "no",
            r.considerations,
        )
        for r in rows
    ]
    widths = [max(len(str(col)) for col in column) for column in zip(header, *cells)]
    lines = ["  ".join(str(col).ljust(w) for col, w in zip(line, widths)).rstrip()
             for line in (header, *cells)]
    lines.insert(1, "  ".join("-" * w for w in widths))
    return "\n".join(lines)


def format_error(result: ProxyResponse) -> str:
    status = result.content.get("status", result.status_code)
    body = result.content.get("body", result.content.get("error"))
    details = body if isinstance(body, str) else json.dumps(body)
    return f"Error fetching recommendation (status {status}).\nDetails: {details}"


async def ask(
    question: str,
    details: dict[str, Any],
    history: list[dict[str, str]],
    settings: Settings,
    client: httpx.AsyncClient,
) -> ProxyResponse:
    options = ProxyOptions(
        timeout=settings.qa_timeout_seconds,
        retry_without_bearer=settings.qa_retry_without_bearer,
        include_recommended_numbers=True,
    )
    body = json.dumps({"question": question, "details": details, "history": history})
    return await handle_inquiry(body.encode("utf-8"), settings, options, client)


async def chat(details: dict[str, Any], settings: Settings) -> None:
    """
    Interactive terminal chat against the configured upstream.

    History is kept for the session only, in the same shape the web UI sends.
    """
    history: list[dict[str, str]] = [{"role": "assistant", "content": GREETING}]
    print(f"bot> {GREETING}\n")

    async with httpx.AsyncClient() as client:
        while True:
            try:
                user_input = input("you> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not user_input:
                continue
            if user_input.lower() in {"/q", "/quit", "/exit"}:
                break

            result = await ask(user_input, details, history, settings, client)
            history.append({"role": "user", "content": user_input})

            if result.status_code != 200:
                reply = format_error(result)
            else:
                reply = str(result.content.get("answer") or "")
                table = format_numbers_table(result.content.get("recommendedNumbers") or [])
                if table:
                    print(f"\n{table}\n")
            history.append({"role": "assistant", "content": reply})
            print(f"bot> {reply}\n")


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Chat with the phone number assistant from the terminal."
    )
    add_detail_arguments(parser)
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging("WARNING", json_output=False)

    details = details_from_args(args)
    if not details["selectedCountries"]:
        parser.error("select at least one country with --country")
    for code in details["selectedCountries"]:
        name = country_name(code)
        print(f"country: {code} ({name})" if name else f"country: {code} (unknown code)")
    print()

    asyncio.run(chat(details, settings))


if __name__ == "__main__":
    main()
