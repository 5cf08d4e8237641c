from __future__ import annotations

import argparse
from collections.abc import Sequence
from typing import Any

from number_advisor.cli import add_detail_arguments, details_from_args
from number_advisor.models import Inquiry
from number_advisor.prompt import compose_prompt


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Print the question that would be sent upstream. Makes no network calls."
    )
    parser.add_argument("question", type=str)
    parser.add_argument(
        "--no-details",
        action="store_true",
        help="Leave out the Details block, as when the client sends no filters.",
    )
    add_detail_arguments(parser)
    args = parser.parse_args(argv)

    payload: dict[str, Any] = {"question": args.question}
    if not args.no_details:
        payload["details"] = details_from_args(args)

    print(compose_prompt(Inquiry.from_payload(payload)))


if __name__ == "__main__":
    main()
