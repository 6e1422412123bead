from collections.abc import Callable
from typing import Any, Generic, Protocol, TypeVar

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._implementations

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - background processing handlers
class JobHandler(Protocol):
    """Protocol for job handlers that execute a background job payload."""

    async def execute(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        """
        Execute a background job.

        Args:
            payload: Job-specific parameters

        Returns:
            Optional result dictionary, logged with the completed job

        Raises:
            Any exception marks the job as failed and eligible for retry.
        """
        ...


class JobRegistry(Registry[JobHandler]):
    """Registry for background job handlers, keyed by job type."""

    def __init__(self):
        super().__init__("Job")


# Email sender registry - delivery backends for notifications
class EmailSender(Protocol):
    """Protocol for outgoing email delivery."""

    async def send(self, message: Any) -> None:
        """Deliver one message (an OutgoingEmail) or raise."""
        ...


class EmailSenderRegistry(Registry[Callable[[Any], EmailSender]]):
    """Registry of email sender factories (console, sendgrid), built from Settings."""

    def __init__(self):
        super().__init__("EmailSender")


# Global registry instances (singletons)
email_sender_registry = EmailSenderRegistry()
