"""Exception hierarchy for opsctl.

Every error carries a short machine-readable ``code`` so JSON callers can
branch on it without parsing messages.
"""

from __future__ import annotations


class OpsError(Exception):
    """Base exception for all opsctl errors."""

    def __init__(self, message: str, *, code: str = "ops_error") -> None:
        super().__init__(message)
        self.code = code


class ConfigError(OpsError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="config_error")


class StoreError(OpsError):
    """Store read/write/query failures other than a plain missing record."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="store_error")


class NotFound(OpsError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="not_found")


class AmbiguousReference(OpsError):
    def __init__(self, message: str, *, matches: list[str] | None = None) -> None:
        super().__init__(message, code="ambiguous_reference")
        self.matches = matches or []


class InvalidPair(OpsError):
    def __init__(self, pair: str) -> None:
        super().__init__(f"Invalid key=value pair: {pair}", code="invalid_pair")
        self.pair = pair


class InvalidKey(OpsError):
    def __init__(self, pair: str) -> None:
        super().__init__(f"Invalid key in pair: {pair}", code="invalid_key")
        self.pair = pair


class ScopeUnresolved(OpsError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="scope_unresolved")


class MissingCredential(OpsError):
    def __init__(self, name: str, *, provider: str) -> None:
        super().__init__(f"{provider}: missing required environment variable {name}", code="missing_credential")
        self.name = name
        self.provider = provider


class ProviderRequestFailed(OpsError):
    """A provider read failed at the network, API or CLI level."""

    def __init__(self, message: str, *, provider: str, status: int | None = None) -> None:
        super().__init__(message, code="provider_request_failed")
        self.provider = provider
        self.status = status


class MissingVariables(OpsError):
    def __init__(self, names: list[str]) -> None:
        super().__init__(
            f"Missing template variables: {', '.join(names)}. "
            "Provide them with --var or select an --issue/--pr/--task context.",
            code="missing_variables",
        )
        self.names = names


class CommandNotFound(OpsError):
    def __init__(self, command_id: str) -> None:
        super().__init__(f"Command '{command_id}' not found.", code="command_not_found")
        self.command_id = command_id


class CommandAmbiguous(OpsError):
    def __init__(self, command_id: str) -> None:
        super().__init__(f"Command '{command_id}' is not unique.", code="command_ambiguous")
        self.command_id = command_id


class LockHeld(OpsError):
    def __init__(self, pid: int, *, path: str) -> None:
        super().__init__(
            f"Another process (pid {pid}) holds the lock at {path}. Retry once it finishes.",
            code="lock_held",
        )
        self.pid = pid
        self.path = path


class LockAcquisitionFailed(OpsError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Could not acquire the store lock at {path} after clearing a stale lock.", code="lock_failed")
        self.path = path
