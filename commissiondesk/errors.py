"""Exceptions raised by the commission core."""
from __future__ import annotations


class CommissionError(Exception):
    """Base class for commission calculation failures."""


class ConfigurationError(CommissionError, ValueError):
    """Profile, tier, timezone or input data cannot be used as configured.

    Never retried and never converted into a zero commission; the message
    names the trainer or profile that needs fixing.
    """


class NoProfileAssignedError(CommissionError):
    """The trainer has no active commission profile."""

    def __init__(self, trainer_id: int, reason: str | None = None) -> None:
        self.trainer_id = trainer_id
        detail = reason or "no commission profile assigned"
        super().__init__(f"Trainer {trainer_id}: {detail}. Contact your manager.")


class TrainerNotFoundError(CommissionError, LookupError):
    """No trainer exists with the requested id."""

    def __init__(self, trainer_id: int) -> None:
        self.trainer_id = trainer_id
        super().__init__(f"Trainer {trainer_id} not found.")


class OrganizationNotFoundError(CommissionError, LookupError):
    def __init__(self, organization_id: int) -> None:
        self.organization_id = organization_id
        super().__init__(f"Organization {organization_id} not found.")


__all__ = [
    "CommissionError",
    "ConfigurationError",
    "NoProfileAssignedError",
    "OrganizationNotFoundError",
    "TrainerNotFoundError",
]
