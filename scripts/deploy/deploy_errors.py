"""Terminal errors raised by the dual Web App deploy.

None of these are retried. `deploy_dual_webapps.main()` prints `format()` and
exits non-zero.
"""

from __future__ import annotations


class DeployError(Exception):
    """Base class for deploy failures that abort the run."""

    def __init__(self, message: str, *, hints: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.hints = list(hints or [])

    def format(self) -> str:
        lines = [f"❌ {self.message}"]
        if self.hints:
            lines.append("")
            lines.extend(self.hints)
        return "\n".join(lines)


class InvalidArgumentError(DeployError):
    """Missing or malformed CLI input (image reference, resource names)."""


class UserCancelledError(DeployError):
    """The operator declined the confirmation prompt."""

    def __init__(self, message: str = "Cancelled."):
        super().__init__(message)

    def format(self) -> str:
        return self.message


class CredentialsMissingError(DeployError):
    """No registry credentials could be resolved by any tier."""


class ProvisioningError(DeployError):
    """An Azure CLI call failed while creating or configuring a resource."""

    def __init__(self, *, operation: str, message: str, stderr: str | None = None):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.stderr = (stderr or "").strip()

    def format(self) -> str:
        out = super().format()
        if self.stderr:
            out += f"\n\nAzure CLI error:\n{self.stderr}"
        return out
