from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, field_validator

# Field names mirror the JSON the browser sends and the upstream returns,
# hence camelCase.


def _as_text(value: object) -> object:
    """Render scalars as text and objects or lists as compact JSON."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), default=str)


Text = Annotated[str | None, BeforeValidator(_as_text)]


class HistoryTurn(BaseModel):
    role: Text = None
    content: Text = None


class InquiryDetails(BaseModel):
    smsType: Text = None
    useCase: Text = None
    businessPresence: Text = None
    timeline: Text = None
    volume: Text = None
    voiceRequired: Text = None
    selectedCountries: list[str] | None = None

    @field_validator("selectedCountries", mode="before")
    @classmethod
    def _countries(cls, value: object) -> object:
        if not isinstance(value, list):
            return None
        return [str(v) for v in value if v is not None]


class Inquiry(BaseModel):
    question: str
    details: InquiryDetails | None = None
    history: list[HistoryTurn] = []

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Inquiry:
        """
        Build an Inquiry from a request body whose `question` is already checked.

        Anything malformed outside of `question` is dropped rather than
        rejected: a non-object `details` becomes None, a non-list `history`
        becomes empty, and non-object turns become empty turns.
        """
        details = payload.get("details")
        history = payload.get("history")
        turns = history if isinstance(history, list) else []
        return cls(
            question=payload["question"],
            details=InquiryDetails.model_validate(details) if isinstance(details, dict) else None,
            history=[
                HistoryTurn.model_validate(t) if isinstance(t, dict) else HistoryTurn()
                for t in turns
            ],
        )


class RecommendedNumber(BaseModel):
    geo: str = ""
    type: str = ""
    status: str | None = None
    smsEnabled: bool = False
    voiceEnabled: bool = False
    considerations: str = ""
    restrictions: str = ""


class RecommendationResult(BaseModel):
    # Passed through from the upstream as-is, so no narrower types here.
    answer: Any = ""
    recommendedNumbers: Any = None

    def to_content(self, include_recommended_numbers: bool) -> dict[str, Any]:
        content: dict[str, Any] = {"answer": self.answer}
        if include_recommended_numbers:
            content["recommendedNumbers"] = self.recommendedNumbers
        return content


class UpstreamErrorBody(BaseModel):
    error: str = "Upstream error"
    tried: list[str]
    status: int
    body: Any = None


class ErrorMessage(BaseModel):
    error: str
