from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from .models import HistoryTurn, Inquiry, InquiryDetails

DETAIL_LABELS: Final[tuple[tuple[str, str], ...]] = (
    ("SMS Type", "smsType"),
    ("Use Case", "useCase"),
    ("Business Presence", "businessPresence"),
    ("Timeline", "timeline"),
    ("Expected Volume", "volume"),
    ("Voice Required", "voiceRequired"),
)


def format_details(details: InquiryDetails | None) -> str:
    """
    Render the filter selections as a bullet block.

    Every label is always present; unset values render empty so the upstream
    sees the same shape regardless of what the user filled in.
    """
    if details is None:
        return ""

    lines = ["", "", "Details:"]
    for label, field in DETAIL_LABELS:
        lines.append(f"- {label}: {getattr(details, field) or ''}")
    countries = ", ".join(details.selectedCountries or [])
    lines.append(f"- Selected Countries: {countries}")
    return "\n".join(lines)


def format_history(history: Sequence[HistoryTurn]) -> str:
    if not history:
        return ""
    transcript = "\n".join(
        f"{'user' if t.role is None else t.role}: {t.content or ''}" for t in history
    )
    return f"\n\nConversation so far:\n{transcript}"


def compose_prompt(inquiry: Inquiry) -> str:
    """Build the single question string sent upstream."""
    return f"{inquiry.question}{format_details(inquiry.details)}{format_history(inquiry.history)}"
