from typing import Any
from pydantic import ValidationError


class AddressValidationError(Exception):
    def __init__(self, errors: list[dict[str, Any]], original: ValidationError | None = None):
        self.errors = errors
        self.original = original
        msg = f"Address record failed validation with {len(errors)} error(s)"

        super().__init__(msg)

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "AddressValidationError":
        return cls(errors=list(exc.errors()), original=exc)

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues.

        Only field locations and error types are included, never the
        offending values, so the summary is safe for shared logs.
        """
        lines = []
        for err in self.errors[:limit]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            lines.append(f"- {loc}: {err.get('msg')} ({err.get('type')})")
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)
