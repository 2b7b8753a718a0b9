"""Exception types raised by the skill manager."""


class SkillManagerError(RuntimeError):
    """Base class for all skill manager failures."""


class SkillRootNotFoundError(SkillManagerError):
    """Raised when no unambiguous skill root (a folder with `SKILL.md`) exists."""


class CustomPathNotFoundError(SkillManagerError):
    """Raised when a custom skill path does not exist on disk."""

    def __init__(self, path):
        super().__init__(f"The selected directory does not exist: {path}")
        self.path = path


class DuplicateCustomPathError(SkillManagerError):
    """Raised when a custom skill path has already been registered."""

    def __init__(self, path):
        super().__init__(f"This path has already been added: {path}")
        self.path = path


class NoDestinationError(SkillManagerError, ValueError):
    """Raised when an install or import is requested without a target platform."""

    def __init__(self):
        super().__init__("Choose at least one platform to install into.")


class InvalidImportSourceError(SkillManagerError, ValueError):
    """Raised when an import source is neither a folder nor a `.zip` file."""


class ExtractionError(SkillManagerError):
    """Raised when an archive can't be extracted."""


class RemoteRegistryError(SkillManagerError):
    """Base class for remote registry failures."""


class BadResponseError(RemoteRegistryError):
    """Raised on transport failures and non-2xx responses."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(RemoteRegistryError):
    """Raised when a registry response can't be decoded."""
