"""Errors raised while assembling the backend.

Every error is fatal to the run. Nothing is retried and no partial resource
graph is produced, so each message names the file, key or command at fault.
"""

from pathlib import Path


class AssemblerError(Exception):
    """Base class for all assembler failures."""


class ConfigurationError(AssemblerError):
    """Raised when the configuration context is missing or invalid."""


class MissingFileError(AssemblerError):
    """Raised when a required input file does not exist."""

    def __init__(self, path: Path, reason: str = "required file not found"):
        self.path = Path(path)
        super().__init__(f"{reason}: {self.path}")


class MalformedFileNameError(AssemblerError):
    """Raised when a file name does not follow its positional micro-format."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        super().__init__(f"Malformed file name '{self.path.name}': {reason}")


class InvalidTemplateError(AssemblerError):
    """Raised when the contents of a template or config file cannot be used."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        super().__init__(f"Invalid file '{self.path.name}': {reason}")


class DuplicateFragmentError(AssemblerError):
    """Raised when two files contribute conflicting fragments to one descriptor."""

    def __init__(self, owner: str, path: Path, reason: str):
        self.owner = owner
        self.path = Path(path)
        super().__init__(f"Conflicting fragment for '{owner}' in '{self.path.name}': {reason}")


class UnresolvedReferenceError(AssemblerError):
    """Raised when a descriptor references something that was never declared."""


class IdentifierCollisionError(AssemblerError):
    """Raised when two distinct inputs format to the same resource identifier."""


class OutputCollisionError(AssemblerError):
    """Raised when two output maps provide the same key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Output key '{key}' is produced more than once")


class BundleError(AssemblerError):
    """Raised when building a function deployment artifact fails."""

    def __init__(
        self,
        name: str,
        command: list[str] | None = None,
        returncode: int | None = None,
        output: str = "",
    ):
        self.name = name
        self.command = command or []
        self.returncode = returncode
        self.output = output
        message = f"Bundling '{name}' failed"
        if self.command:
            message += f" (command: {' '.join(self.command)}, exit code: {returncode})"
        if output:
            message += f"\n{output}"
        super().__init__(message)
