# price_engine/models/validation.py

"""Outcome of validating a single quote."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ValidationError:
    """A hard problem: the quote must not be persisted."""

    code: str
    message: str
    field: str = ""


@dataclass(frozen=True)
class ValidationWarning:
    """A soft problem: persisted, but with reduced confidence."""

    code: str
    message: str
    suggestion: str = ""


@dataclass
class ValidationResult:
    """Validation verdict for one quote."""

    is_valid: bool
    normalized_price: float
    confidence: float
    errors: list[ValidationError] = field(
        default_factory=lambda: list[ValidationError]()
    )
    warnings: list[ValidationWarning] = field(
        default_factory=lambda: list[ValidationWarning]()
    )

    def has_warning(self, code: str) -> bool:
        return any(w.code == code for w in self.warnings)

    def has_error(self, code: str) -> bool:
        return any(e.code == code for e in self.errors)
