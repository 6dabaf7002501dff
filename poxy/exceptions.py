"""poxy exception hierarchy.

Base exceptions for all layers with correlation ID support. Failures of
the AUR build pipeline are tagged with the stage that produced them so
callers can report where a build stopped.

Usage:
    from poxy.exceptions import BuildStageError

    try:
        await builder.build_and_install("yay", options)
    except BuildStageError as e:
        logger.error("%s failed: %s", e.stage, e, exc_info=e.__cause__)
"""

import uuid
from collections.abc import Sequence


class PoxyError(Exception):
    """Base exception for all poxy errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ConfigurationError(PoxyError):
    """Errors from application configuration."""

    pass


class ProcessError(PoxyError):
    """An external command exited non-zero."""

    def __init__(
        self,
        message: str,
        *,
        argv: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
        **kwargs,
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, **kwargs)


class RegistryError(PoxyError):
    """Errors from the AUR RPC API (transport, status, or payload)."""

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class PackageNotCachedError(PoxyError):
    """A cached recipe was requested for a package that was never fetched."""

    def __init__(self, package: str, **kwargs):
        self.package = package
        super().__init__(f"package not cached: {package}", **kwargs)


class ProfileLockedError(PoxyError):
    """A built-in isolation profile template was mutated instead of a clone."""

    pass


# =============================================================================
# SANDBOX
# =============================================================================


class SandboxError(PoxyError):
    """Errors from sandboxed execution."""

    pass


class SandboxSetupError(SandboxError):
    """The sandbox launcher could not start or could not set up isolation.

    The wrapped command never ran, so running it outside the sandbox is a
    meaningful retry.
    """

    pass


class SandboxCommandFailed(SandboxError):
    """The sandbox started and the wrapped command exited non-zero."""

    def __init__(self, message: str, *, exit_code: int, **kwargs):
        self.exit_code = exit_code
        super().__init__(message, **kwargs)


# =============================================================================
# BUILD PIPELINE
# =============================================================================


class BuildStageError(PoxyError):
    """A build pipeline stage failed.

    ``stage`` names the stage (resolve, fetch, parse, review, deps,
    build, collect, install). The underlying error, if any, is chained
    as ``__cause__``.
    """

    default_stage = "build"

    def __init__(self, message: str, *, stage: str | None = None, **kwargs):
        self.stage = stage or self.default_stage
        super().__init__(message, **kwargs)


class ResolveError(BuildStageError):
    """Looking the package up in the registry failed."""

    default_stage = "resolve"


class PackageNotFoundError(ResolveError):
    """The registry has no package with the requested name."""

    def __init__(self, package: str, **kwargs):
        self.package = package
        super().__init__(f"package not found in AUR: {package}", **kwargs)


class FetchError(BuildStageError):
    """Cloning the package repository failed."""

    default_stage = "fetch"


class RecipeParseError(BuildStageError):
    """The recipe file could not be read."""

    default_stage = "parse"


class ReviewRejectedError(BuildStageError):
    """The reviewer rejected the recipe. A user decision, not a fault."""

    default_stage = "review"


class DependencyError(BuildStageError):
    """Missing dependencies could not be installed."""

    default_stage = "deps"


class BuildError(BuildStageError):
    """makepkg ran and failed, inside or outside the sandbox."""

    default_stage = "build"


class NoArtifactsError(BuildStageError):
    """The build finished but left no package archives behind."""

    default_stage = "collect"


class InstallError(BuildStageError):
    """Installing the built archives failed."""

    default_stage = "install"


class OperationCancelledError(BuildStageError):
    """An in-flight external process was cancelled by the caller."""

    default_stage = "cancelled"
