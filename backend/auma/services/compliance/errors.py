"""Compliance gate exceptions."""


class ComplianceError(Exception):
    """Base exception for the compliance gate."""


class PolicyLoadError(ComplianceError):
    """The keyword policy file is missing or malformed."""


class EscalationNotFound(ComplianceError):
    def __init__(self, escalation_id: str):
        self.escalation_id = escalation_id
        super().__init__(f"Escalation {escalation_id} not found")


class InvalidEscalationTransition(ComplianceError):
    def __init__(self, escalation_id: str, current: str, target: str):
        self.escalation_id = escalation_id
        self.current = current
        self.target = target
        super().__init__(
            f"Escalation {escalation_id} cannot move from {current} to {target}"
        )


class StorageError(ComplianceError):
    """The storage collaborator failed."""


class EscalationStorageError(StorageError):
    """The storage collaborator failed to read or write an escalation.

    ``record`` carries the escalation that failed to insert, when there was one.
    """

    def __init__(self, message: str, record=None):
        self.record = record
        super().__init__(message)
