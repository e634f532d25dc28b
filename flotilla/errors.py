"""Error types surfaced to the client."""


class FlotillaError(Exception):
    """Base exception carrying a user-facing message."""

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def render(self) -> str:
        """Text shown to the user, prefixed with 'Error: '."""
        text = f"Error: {self.message}"
        if self.details:
            text += f"\n{self.details}"
        return text


class DefinitionError(FlotillaError):
    """A definition document is malformed."""


class UnknownEntity(FlotillaError):
    def __init__(self, name: str, referenced_by: str | None = None):
        if referenced_by:
            message = f"Unknown entity '{name}' (referenced by '{referenced_by}')"
        else:
            message = f"Unknown entity '{name}'"
        super().__init__(message)
        self.name = name
        self.referenced_by = referenced_by


class CycleDetected(FlotillaError):
    def __init__(self, path: list[str]):
        super().__init__(f"The dependency graph contains a cycle: {' -> '.join(path)}")
        self.path = path


class CheckFailed(FlotillaError):
    def __init__(self, name: str, about: str, help: str, suggested_fix: str | None = None):
        details = f"Suggested fix: {suggested_fix}" if suggested_fix else None
        super().__init__(f"The {about} check has failed\nMessage: {help}", details=details)
        self.name = name


class ReadinessTimeout(FlotillaError):
    def __init__(self, name: str):
        super().__init__(
            "The service did not complete its readiness probe checks in time.\nCheck the logs for more details."
        )
        self.name = name


class ReadinessProbeError(FlotillaError):
    def __init__(self, name: str, cause: str):
        super().__init__(
            "An error occurred while waiting for the service readiness probe to complete.\n"
            "This is usually a mistake in the probe configuration, ensure the command or condition is correct.",
            details=f"Probe error for {name}: {cause}",
        )
        self.name = name


class TaskTimeout(FlotillaError):
    def __init__(self, name: str):
        super().__init__(
            f'Task "{name}" took too long to finish.\n'
            f"Try increasing the timeout or check the logs using `flotilla logs {name}`.\n"
            "Note: The task may still be running."
        )
        self.name = name


class TaskFailed(FlotillaError):
    def __init__(self, name: str, code: int):
        super().__init__(f'Task "{name}" failed with exit code {code}.\nCheck the logs using `flotilla logs {name}`.')
        self.name = name
        self.code = code


class DaemonUnavailable(FlotillaError):
    """The client could not reach (or start) the daemon."""


class SpawnFailed(FlotillaError):
    def __init__(self, name: str, cause: str):
        super().__init__(f"Failed to start {name}: {cause}")
        self.name = name
