from pydantic import BaseModel

from app.services.scheduling_types import ValidationResult, Violation, ViolationKind


class ViolationOut(BaseModel):
    kind: ViolationKind
    message: str
    schedule_id: str | None = None
    entry: int | None = None

    @classmethod
    def from_violation(cls, violation: Violation) -> "ViolationOut":
        return cls(
            kind=violation.kind,
            message=violation.message,
            schedule_id=violation.schedule_id,
            entry=violation.entry,
        )


class ValidationResultOut(BaseModel):
    accepted: bool
    violations: list[ViolationOut]

    @classmethod
    def from_result(cls, result: ValidationResult) -> "ValidationResultOut":
        return cls(
            accepted=result.accepted,
            violations=[ViolationOut.from_violation(item) for item in result.violations],
        )
