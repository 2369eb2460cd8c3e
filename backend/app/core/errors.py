from __future__ import annotations


class AutomationError(Exception):
    """Base class for failures raised by the candidate automation core."""


class EntityNotFound(AutomationError):
    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class PreconditionFailed(AutomationError):
    pass
