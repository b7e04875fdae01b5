"""Error taxonomy shared by the workflow engine, saturation harness and verifier."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class ToolError(Exception):
    """Raised when a browser or API operation fails."""

    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    message: str = ""

    def __str__(self) -> str:  # pragma: no cover - human readable helper
        return f"{self.name} failed ({self.message}) with payload={self.payload}"


@dataclass
class UiDetectionTimeout(ToolError):
    """None of the landmarks of a required phase appeared within its wait window."""


@dataclass
class WorkflowIncompleteError(ToolError):
    """Final navigation away from the auth/onboarding routes never happened."""


@dataclass
class CredentialExtractionError(ToolError):
    """Navigation succeeded but the application stored no auth token."""


class VerificationError(AssertionError):
    """A post-condition of the rate-limit contract was violated."""


class SkipCondition(Exception):
    """Scenario cannot run or conclude; reported as a skip, never as a failure."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class MissingPrecondition(SkipCondition):
    """Required configuration (usually credentials) is absent."""


class SaturationInconclusive(SkipCondition):
    """The attempt ceiling was reached without observing the rate-limit status."""

    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Did not hit rate limit after {attempts} requests - "
            f"threshold of this environment is higher than the attempt ceiling"
        )
        self.attempts = attempts
