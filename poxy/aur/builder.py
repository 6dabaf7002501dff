"""AUR build orchestration.

Drives one package through the build pipeline:

    resolve -> fetch -> parse -> review -> deps -> build -> collect [-> install]

Each stage is awaited in order. A failing stage raises a
:class:`~poxy.exceptions.BuildStageError` subclass tagged with the
stage name, and no later stage runs. Collaborators (registry, git,
native package manager, sandbox executor, recipe parser) are injected
so the pipeline can run against fakes.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from poxy.aur.client import AURClient, RegistryPackage
from poxy.aur.deps import DependencyResolver
from poxy.aur.parser import RecipeParser
from poxy.aur.recipe import BuildRecipe
from poxy.aur.review import AutoAcceptReviewGate, ReviewGate
from poxy.exceptions import (
    BuildError,
    FetchError,
    InstallError,
    NoArtifactsError,
    OperationCancelledError,
    PackageNotCachedError,
    ProcessError,
    RegistryError,
    ResolveError,
    ReviewRejectedError,
    SandboxCommandFailed,
    SandboxSetupError,
)
from poxy.native.pacman import NativePackageManager, Pacman
from poxy.process import run_process
from poxy.sandbox.bubblewrap import BubblewrapExecutor, build_sandbox_profile
from poxy.settings import Settings, get_settings
from poxy.vcs import GitClient

logger = logging.getLogger(__name__)

ARTIFACT_PATTERNS = ("*.pkg.tar.zst", "*.pkg.tar.xz", "*.pkg.tar.gz", "*.pkg.tar")


# =============================================================================
# CAPABILITIES
# =============================================================================


@runtime_checkable
class ProgressSink(Protocol):
    """Receives a notification at the start of each stage."""

    def notify(self, stage: str, message: str) -> None: ...


class NullProgressSink:
    def notify(self, stage: str, message: str) -> None:
        pass


class Registry(Protocol):
    async def get_package(self, name: str) -> RegistryPackage: ...


class BuildOptions(BaseModel):
    """Per-call build options.

    Field defaults are all off; use :meth:`defaults` for the normal
    interactive configuration.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    force: bool = Field(default=False, description="Overwrite existing packages (makepkg -f)")
    clean_build: bool = Field(default=False, description="Clean build dir before building (makepkg -C)")
    skip_pgp_check: bool = Field(default=False, description="Skip PGP signature verification")
    no_confirm: bool = Field(default=False, description="Pass --noconfirm to pacman and makepkg")
    use_sandbox: bool = Field(default=False, description="Build inside bubblewrap when available")
    keep_sources: bool = Field(default=False, description="Keep extracted sources after the build")
    install_deps: bool = Field(default=False, description="Install missing dependencies first")
    as_deps: bool = Field(default=False, description="Mark installed packages as dependencies")
    verbose: bool = Field(default=False, description="Log launcher arguments at INFO")
    review: bool = Field(default=False, description="Run the security review gate")
    review_gate: ReviewGate = Field(
        default_factory=AutoAcceptReviewGate,
        description="Decides whether a recipe may be built",
    )
    progress: ProgressSink = Field(
        default_factory=NullProgressSink,
        description="Stage start notifications",
    )

    @classmethod
    def defaults(cls, **overrides) -> "BuildOptions":
        """Clean build, sandboxed when available, dependencies installed, review on."""
        values = {
            "clean_build": True,
            "use_sandbox": True,
            "install_deps": True,
            "review": True,
        }
        values.update(overrides)
        return cls(**values)


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class AURBuilder:
    """Builds AUR packages from their PKGBUILD repositories.

    Usage:
        builder = AURBuilder()
        artifacts = await builder.build_and_install("yay", BuildOptions.defaults())
    """

    def __init__(
        self,
        cache_dir: Path | str | None = None,
        *,
        registry: Registry | None = None,
        git: GitClient | None = None,
        native: NativePackageManager | None = None,
        executor: BubblewrapExecutor | None = None,
        parser: RecipeParser | None = None,
        resolver: DependencyResolver | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.settings = settings
        self.cache_dir = Path(cache_dir) if cache_dir is not None else settings.cache_dir
        self.registry = registry or AURClient(
            settings.aur_rpc_url,
            base_url=settings.aur_base_url,
            timeout=settings.registry_timeout_seconds,
        )
        self.git = git or GitClient(settings.git_path)
        self.native = native or Pacman(settings.pacman_path, settings.sudo_path)
        self.executor = executor or BubblewrapExecutor(settings.bwrap_path)
        self.parser = parser or RecipeParser(
            timeout=settings.parse_timeout_seconds,
            bash_path=settings.bash_path,
        )
        self.resolver = resolver or DependencyResolver(self.native)

    def package_dir(self, package_base: str) -> Path:
        return self.cache_dir / package_base

    async def build(
        self,
        name: str,
        options: BuildOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[Path]:
        """Build a package and return the paths of the built archives.

        Raises:
            BuildStageError: a stage failed; ``stage`` names which one
        """
        options = options or BuildOptions.defaults()
        _, artifacts = await self._run_pipeline(name, options, cancel)
        return artifacts

    async def build_and_install(
        self,
        name: str,
        options: BuildOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[Path]:
        """Build a package and install the resulting archives.

        Raises:
            BuildStageError: a stage failed; ``stage`` names which one
        """
        options = options or BuildOptions.defaults()
        _, artifacts = await self._run_pipeline(name, options, cancel)

        stage = "install"
        options.progress.notify(stage, f"Installing {len(artifacts)} package(s)...")
        try:
            await self.native.install_files(
                artifacts,
                as_deps=options.as_deps,
                no_confirm=options.no_confirm,
                cancel=cancel,
            )
        except OperationCancelledError as e:
            e.stage = stage
            raise
        except (ProcessError, OSError) as e:
            raise InstallError(f"failed to install packages: {e}") from e

        logger.info("Installed %s", ", ".join(p.name for p in artifacts))
        return artifacts

    async def resolve(self, name: str) -> RegistryPackage:
        """Look a package up in the registry.

        Raises:
            ResolveError: not found, or the registry request failed
        """
        try:
            return await self.registry.get_package(name)
        except RegistryError as e:
            raise ResolveError(f"failed to look up {name}: {e}") from e

    async def fetch(
        self,
        package: RegistryPackage,
        options: BuildOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> BuildRecipe:
        """Fetch and parse an already resolved package (no review, no build)."""
        options = options or BuildOptions()
        stage = "fetch"
        try:
            options.progress.notify(stage, "Cloning package repository...")
            pkg_dir = await self._fetch(package, cancel)
            stage = "parse"
            options.progress.notify(stage, "Parsing PKGBUILD...")
            return await asyncio.to_thread(self.parser.parse, pkg_dir / "PKGBUILD")
        except OperationCancelledError as e:
            e.stage = stage
            raise

    async def _run_pipeline(
        self,
        name: str,
        options: BuildOptions,
        cancel: asyncio.Event | None,
    ) -> tuple[BuildRecipe, list[Path]]:
        progress = options.progress
        stage = "resolve"
        try:
            progress.notify(stage, f"Looking up {name}...")
            package = await self.resolve(name)

            stage = "fetch"
            progress.notify(stage, "Cloning package repository...")
            pkg_dir = await self._fetch(package, cancel)

            stage = "parse"
            progress.notify(stage, "Parsing PKGBUILD...")
            recipe = await asyncio.to_thread(self.parser.parse, pkg_dir / "PKGBUILD")

            stage = "review"
            if options.review:
                progress.notify(stage, "Reviewing PKGBUILD...")
                if not options.review_gate.review(package, recipe):
                    raise ReviewRejectedError("build cancelled by user")

            stage = "deps"
            if options.install_deps:
                progress.notify(stage, "Checking dependencies...")
                await self.resolver.install_missing(
                    recipe,
                    as_deps=options.as_deps,
                    no_confirm=options.no_confirm,
                    cancel=cancel,
                )

            stage = "build"
            progress.notify(stage, f"Building {recipe.name} {recipe.full_version}...")
            await self._build(pkg_dir, options, cancel)

            stage = "collect"
            progress.notify(stage, "Collecting built packages...")
            artifacts = self._collect(pkg_dir)
        except OperationCancelledError as e:
            e.stage = stage
            raise

        logger.info("Built %s: %s", recipe.name, ", ".join(p.name for p in artifacts))
        return recipe, artifacts

    async def _fetch(self, package: RegistryPackage, cancel: asyncio.Event | None) -> Path:
        pkg_dir = self.package_dir(package.package_base)

        if (pkg_dir / ".git").exists():
            try:
                await self.git.pull(pkg_dir, cancel=cancel)
                return pkg_dir
            except (ProcessError, OSError) as e:
                logger.warning("git pull failed for %s, re-cloning: %s", pkg_dir, e)

        try:
            if pkg_dir.exists():
                shutil.rmtree(pkg_dir)
            pkg_dir.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FetchError(f"failed to prepare {pkg_dir}: {e}") from e

        try:
            await self.git.clone(package.git_clone_url, pkg_dir, cancel=cancel)
        except (ProcessError, OSError) as e:
            raise FetchError(f"failed to clone repository: {e}") from e
        return pkg_dir

    def makepkg_command(self, options: BuildOptions) -> list[str]:
        args = [self.settings.makepkg_path]
        if options.force:
            args.append("-f")
        if options.clean_build:
            args.append("-C")
        if not options.keep_sources:
            args.append("-c")
        if options.skip_pgp_check:
            args.append("--skippgpcheck")
        if options.no_confirm:
            args.append("--noconfirm")
        return args

    async def _build(self, pkg_dir: Path, options: BuildOptions, cancel: asyncio.Event | None) -> None:
        command = self.makepkg_command(options)

        if options.use_sandbox:
            if self.executor.available():
                profile = build_sandbox_profile(str(self.cache_dir))
                # makepkg downloads sources during the build
                profile.allow_network()
                self.executor.verbose = options.verbose
                try:
                    await self.executor.run(profile, pkg_dir, command, cancel=cancel)
                    return
                except SandboxSetupError as e:
                    logger.warning("Sandbox setup failed, retrying without sandbox: %s", e)
                    options.progress.notify("build", "Sandbox failed, retrying without sandbox...")
                except SandboxCommandFailed as e:
                    raise BuildError(f"makepkg failed in sandbox: {e}") from e
            else:
                options.progress.notify("build", "Sandbox unavailable, building directly...")

        await self._build_direct(pkg_dir, command, cancel)

    async def _build_direct(self, pkg_dir: Path, command: list[str], cancel: asyncio.Event | None) -> None:
        try:
            result = await run_process(command, cwd=pkg_dir, capture=False, cancel=cancel)
            result.check()
        except (ProcessError, OSError) as e:
            raise BuildError(f"makepkg failed: {e}") from e

    def _collect(self, pkg_dir: Path) -> list[Path]:
        artifacts: list[Path] = []
        for pattern in ARTIFACT_PATTERNS:
            artifacts.extend(sorted(pkg_dir.glob(pattern)))
        if not artifacts:
            raise NoArtifactsError(f"no packages found after build in {pkg_dir}")
        return artifacts

    # =========================================================================
    # CACHE
    # =========================================================================

    def clean(self, name: str) -> None:
        """Remove one package's cached repository and build output."""
        pkg_dir = self.package_dir(name)
        if pkg_dir.exists():
            shutil.rmtree(pkg_dir)

    def clean_all(self) -> None:
        """Remove the whole build cache."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)

    def list_cached(self) -> list[str]:
        """Names of cached package repositories, sorted."""
        if not self.cache_dir.is_dir():
            return []
        return sorted(p.name for p in self.cache_dir.iterdir() if p.is_dir())

    def get_cached_recipe(self, name: str) -> BuildRecipe:
        """Parse the cached PKGBUILD of a previously fetched package.

        Raises:
            PackageNotCachedError: the package was never fetched
            RecipeParseError: the PKGBUILD could not be read
        """
        recipe_path = self.package_dir(name) / "PKGBUILD"
        if not recipe_path.exists():
            raise PackageNotCachedError(name)
        return self.parser.parse(recipe_path)


__all__ = [
    "ARTIFACT_PATTERNS",
    "AURBuilder",
    "BuildOptions",
    "NullProgressSink",
    "ProgressSink",
    "Registry",
]
