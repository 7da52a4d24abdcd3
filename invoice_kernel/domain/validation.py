"""Validation result value objects shared by the invoice validator."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationError:
    """A single structural or transition problem.

    ``code`` is the stable machine-readable identifier; ``field`` is the
    dotted path of the offending input (``lines[2].tax_rate``).
    """

    field: str
    message: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


@dataclass(frozen=True)
class ValidationResult:
    """Accumulated outcome of a validation pass."""

    is_valid: bool
    errors: tuple[ValidationError, ...] = ()

    @classmethod
    def from_errors(cls, errors: list[ValidationError]) -> ValidationResult:
        return cls(is_valid=not errors, errors=tuple(errors))

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)
