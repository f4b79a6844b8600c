from pathlib import Path


class PackError(Exception):
    pass


class ConfigurationError(PackError):
    pass


class FetchError(PackError):
    pass


class ProcessError(PackError):
    """An external tool exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        exit_status: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_status = exit_status
        self.output = output


class BuildError(ProcessError):
    pass


class PackagingError(ProcessError):
    pass


class InstallError(ProcessError):
    pass


class StagingError(PackError):
    pass


class PathEscapeError(StagingError):
    pass


class CollisionError(StagingError):
    pass


class TraversalError(PackError):
    pass


class BrokenLinkError(TraversalError):
    pass


class CycleError(TraversalError):
    def __init__(self, link: Path, ancestor: Path) -> None:
        super().__init__(f"cannot handle recursive links: {link} => {ancestor}")
        self.link = link
        self.ancestor = ancestor


class ValidationError(PackError):
    pass
