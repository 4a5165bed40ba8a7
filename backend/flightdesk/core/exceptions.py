class FlightDeskError(Exception):
    """Base exception for the training progress core."""

    pass


class InvalidInputError(FlightDeskError):
    """Raised when user input is empty, non-positive, or otherwise unusable."""

    pass


class DuplicateNameError(InvalidInputError):
    """Raised when a requirement name already exists for the student."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A requirement named '{name}' already exists")


class PermissionDeniedError(FlightDeskError):
    """Raised when the caller lacks the administrative capability."""

    pass


class NotFoundError(FlightDeskError):
    """Raised when a referenced entity id is absent from current state."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} '{entity_id}' not found")


class ProtectedEntityError(FlightDeskError):
    """Raised on an attempt to remove the synthetic Total Flight Time entry."""

    pass


class PreconditionError(FlightDeskError):
    """Raised when the session token or school scope is missing."""

    pass


class RemoteError(FlightDeskError):
    """Raised when the student record store rejects a request or is unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ShapeError(FlightDeskError):
    """Raised when a gateway response is missing an expected field."""

    pass


class InvalidTransitionError(FlightDeskError):
    """Raised when the progress view is asked to move to a state it cannot reach."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from '{current}' to '{target}'")
