class SpinupException(Exception):
    pass


class ValidationException(SpinupException):
    pass


class NotFoundException(SpinupException):
    pass


class ProvisioningException(SpinupException):
    """Failure of one provisioning pipeline stage; recorded on the task, never raised to clients."""

    stage = "provision"


class PullException(ProvisioningException):
    stage = "pull"


class CreateException(ProvisioningException):
    stage = "create"


class NoFreePortsException(CreateException):
    # Allocator exhaustion is reported as a create-stage failure.
    pass


class StartException(ProvisioningException):
    stage = "start"


class InvalidStateTransition(ValueError):
    """Raised for backward or post-terminal task state transitions."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"invalid state transition: {from_state!r} -> {to_state!r}")
