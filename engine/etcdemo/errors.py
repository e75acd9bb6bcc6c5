"""
Exception hierarchy for the harness.

Operation-level outcomes (fail/info) are never raised; they are recorded in
the history. Everything here is either fatal to a run or a fault-injection
problem that the nemesis tolerates.
"""


class EtcdemoError(Exception):
    """Base class for harness errors."""

    pass


class ClientStateError(EtcdemoError):
    """Raised when a client is used outside its open state."""

    pass


class EtcdClientError(EtcdemoError):
    """Raised for transport or protocol errors the client cannot classify."""

    def __init__(self, message: str, status_code: int | None = None, error_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class RemoteError(EtcdemoError):
    """Raised when a command on a node exits non-zero."""

    def __init__(self, node: str, command: list[str], returncode: int, stderr: str = ""):
        super().__init__(
            f"{node}: {' '.join(command)} exited {returncode}: {stderr.strip()}"
        )
        self.node = node
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class RunAborted(EtcdemoError):
    """Raised by a worker when a fatal client error ends the run."""

    def __init__(self, message: str, process: int | None = None):
        super().__init__(message)
        self.process = process
