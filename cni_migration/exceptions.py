"""Custom exceptions for cni-migration."""


class MigrationError(Exception):
    """Base exception for all migration errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class PreconditionNotMetError(MigrationError):
    """Exception raised when an earlier step has not completed."""

    pass


class KubernetesError(MigrationError):
    """Exception raised for Kubernetes API errors."""

    def __init__(self, message: str, details: str = None, status: int | None = None):
        self.status = status
        super().__init__(message, details)


class ConflictError(KubernetesError):
    """Exception raised when an update lost a race with another writer."""

    pass


class ConnectivityError(MigrationError):
    """Exception raised when the connectivity probe does not become healthy."""

    pass


class ReadinessTimeoutError(MigrationError):
    """Exception raised when a workload does not finish rolling out in time."""

    def __init__(self, workload: str, ready: int, desired: int, timeout: float):
        self.workload = workload
        self.ready = ready
        self.desired = desired
        super().__init__(
            f"Timed out waiting for {workload} to become ready: {ready}/{desired}",
            f"Gave up after {timeout:g}s. Check the workload's pods with kubectl describe.",
        )


class NodeOperationError(MigrationError):
    """Exception raised when a kubectl command fails."""

    def __init__(self, command: list[str], returncode: int | None, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command failed: {' '.join(command)}",
            stderr.strip() or f"exit code {returncode}",
        )


class ConfigurationError(MigrationError):
    """Exception raised for configuration errors."""

    pass


class MigrationInterrupted(MigrationError):
    """Exception raised when the operator interrupts a running migration."""

    pass
