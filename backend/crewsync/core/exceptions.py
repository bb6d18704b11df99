"""
Fehler-Taxonomie für den Staffing-Kern.

Jeder Fehler trägt eine maschinenlesbare ``kind`` plus eine lesbare Meldung und
strukturierte Details (Feld, erwarteter/aktueller Zustand …). ``main.py`` rendert
alle ``CrewSyncError`` einheitlich als JSON mit dem passenden HTTP-Status.

Konflikte bei der Einsatzplanung sind kein Fehler, sondern ein Ergebnis
(siehe ``services.conflict_service.ConflictReport``).
"""
from typing import Any


class CrewSyncError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CrewSyncError):
    """Ungültige Eingabe. ``errors`` listet alle Probleme, nicht nur das erste."""

    kind = "validation_error"
    status_code = 422

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class UnknownRoleError(ValidationError):
    kind = "unknown_role"

    def __init__(self, role_code: Any) -> None:
        super().__init__(
            f"Unknown role code: {role_code!r}",
            errors=[{"field": "role_code", "message": f"unknown role code {role_code!r}"}],
            role_code=role_code,
        )
        self.role_code = role_code


class InvalidRoleError(UnknownRoleError):
    kind = "invalid_role"


class InvalidStateError(CrewSyncError):
    kind = "invalid_state"
    status_code = 409

    def __init__(self, message: str, *, expected: Any = None, actual: Any = None, **details: Any) -> None:
        super().__init__(message, expected=expected, actual=actual, **details)
        self.expected = expected
        self.actual = actual


class NoActiveEntryError(InvalidStateError):
    kind = "no_active_entry"


class InvalidTransitionError(CrewSyncError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current: Any, event: Any, message: str | None = None) -> None:
        current_value = getattr(current, "value", current)
        event_value = getattr(event, "value", event)
        super().__init__(
            message or f"Cannot apply '{event_value}' to a timesheet in status {current_value}",
            current=current_value,
            event=event_value,
        )
        self.current = current
        self.event = event


class UnauthorizedError(CrewSyncError):
    kind = "unauthorized"
    status_code = 403


class NotFoundError(CrewSyncError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found", entity=entity, id=str(entity_id))
        self.entity = entity
        self.entity_id = entity_id


class StorageError(CrewSyncError):
    kind = "storage_error"
    status_code = 503

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message, transient=transient)
        self.transient = transient
