"""Schemas for company readiness scoring.

Input records are deliberately untyped: documents and policies come from
free-text uploads and the scorer must tolerate whatever shape they have.
"""

from typing import Any, Literal

from pydantic import BaseModel


class ReadinessItem(BaseModel):
    """A recommended document category."""
    key: str
    label: str
    doc_type: str | None = None
    tags: list[str] = []
    required: bool = False
    weight: int | None = None

    model_config = {"frozen": True}


class ReadinessInputs(BaseModel):
    company: Any = None
    documents: list[Any] = []
    staff: list[Any] = []
    insurance: list[Any] = []
    bonding: Any = None


class BreakdownEntry(BaseModel):
    key: str
    label: str
    completed: bool
    weight: int
    reason: str | None = None


class CompanyReadiness(BaseModel):
    score: int
    total_weight: int
    achieved_weight: int
    breakdown: list[BreakdownEntry]
    missing_keys: list[str]


class NextAction(BaseModel):
    key: str
    label: str
    weight: int
    reason: str | None = None


class ReadinessReport(CompanyReadiness):
    status: Literal["ready", "in_progress", "not_started"]
    next_actions: list[NextAction] = []
