"""Unit tests for poxy/aur/builder.py.

Every collaborator is faked: the registry and native package manager are
AsyncMocks, git clones write a PKGBUILD into the cache, and makepkg
(direct or sandboxed) drops a package archive into the build directory.
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from poxy.aur.builder import AURBuilder, BuildOptions, NullProgressSink
from poxy.aur.deps import DependencyResolver
from poxy.aur.parser import RecipeParser, RegexStrategy
from poxy.aur.review import AutoAcceptReviewGate
from poxy.exceptions import (
    BuildError,
    DependencyError,
    FetchError,
    InstallError,
    NoArtifactsError,
    OperationCancelledError,
    PackageNotCachedError,
    PackageNotFoundError,
    ProcessError,
    RegistryError,
    ResolveError,
    ReviewRejectedError,
    SandboxCommandFailed,
    SandboxSetupError,
)
from poxy.process import ProcessResult

ARTIFACT = "hello-aur-1:1.2.3-2-x86_64.pkg.tar.zst"


def _clone_writing(content: str):
    async def _clone(url, dest, *, cancel=None):
        dest.mkdir(parents=True)
        (dest / ".git").mkdir()
        (dest / "PKGBUILD").write_text(content)

    return _clone


async def _sandbox_ok(profile, workdir, command, *, cancel=None):
    (Path(workdir) / ARTIFACT).touch()
    return ProcessResult(argv=list(command), returncode=0)


async def _direct_ok(argv, *, cwd=None, capture=True, cancel=None, **kwargs):
    (Path(cwd) / ARTIFACT).touch()
    return ProcessResult(argv=list(argv), returncode=0)


@pytest.fixture
def registry(registry_package):
    registry = AsyncMock()
    registry.get_package.return_value = registry_package
    return registry


@pytest.fixture
def git(sample_pkgbuild):
    git = AsyncMock()
    git.clone.side_effect = _clone_writing(sample_pkgbuild)
    return git


@pytest.fixture
def native():
    native = AsyncMock()
    native.is_installed.return_value = True
    return native


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.available.return_value = True
    executor.run = AsyncMock(side_effect=_sandbox_ok)
    return executor


@pytest.fixture
def builder(test_settings, registry, git, native, executor):
    return AURBuilder(
        registry=registry,
        git=git,
        native=native,
        executor=executor,
        parser=RecipeParser(strategies=[RegexStrategy()]),
        settings=test_settings,
    )


@pytest.fixture
def progress():
    return MagicMock()


def _options(progress=None, **overrides) -> BuildOptions:
    values = {"review_gate": AutoAcceptReviewGate(), "progress": progress or NullProgressSink()}
    values.update(overrides)
    return BuildOptions.defaults(**values)


class TestBuildOptions:
    def test_defaults(self):
        options = BuildOptions.defaults()
        assert options.clean_build is True
        assert options.use_sandbox is True
        assert options.install_deps is True
        assert options.review is True
        assert options.force is False
        assert options.no_confirm is False
        assert isinstance(options.review_gate, AutoAcceptReviewGate)
        assert isinstance(options.progress, NullProgressSink)

    def test_fresh_per_call(self):
        a = BuildOptions.defaults()
        b = BuildOptions.defaults()
        assert a.review_gate is not b.review_gate

    def test_bare_model_is_all_off(self):
        options = BuildOptions()
        assert not any([options.clean_build, options.use_sandbox, options.install_deps, options.review])


class TestMakepkgCommand:
    def test_defaults(self, builder):
        assert builder.makepkg_command(BuildOptions.defaults()) == ["makepkg", "-C", "-c"]

    def test_all_flags(self, builder):
        options = BuildOptions(force=True, clean_build=True, skip_pgp_check=True, no_confirm=True)
        assert builder.makepkg_command(options) == ["makepkg", "-f", "-C", "-c", "--skippgpcheck", "--noconfirm"]

    def test_keep_sources(self, builder):
        assert builder.makepkg_command(BuildOptions(keep_sources=True)) == ["makepkg"]


class TestResolveAndReview:
    async def test_not_found_stops_before_fetch(self, builder, registry, git, executor):
        registry.get_package.side_effect = PackageNotFoundError("nope")
        gate = MagicMock()

        with pytest.raises(PackageNotFoundError) as exc_info:
            await builder.build("nope", _options(review_gate=gate))

        assert exc_info.value.stage == "resolve"
        git.clone.assert_not_awaited()
        git.pull.assert_not_awaited()
        gate.review.assert_not_called()
        executor.run.assert_not_awaited()

    async def test_registry_failure_is_resolve_error(self, builder, registry, git):
        registry.get_package.side_effect = RegistryError("AUR request failed: timed out")

        with pytest.raises(ResolveError) as exc_info:
            await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "resolve"
        assert isinstance(exc_info.value.__cause__, RegistryError)
        git.clone.assert_not_awaited()

    async def test_resolve_passes_not_found_through(self, builder, registry):
        registry.get_package.side_effect = PackageNotFoundError("nope")

        with pytest.raises(PackageNotFoundError):
            await builder.resolve("nope")

    async def test_review_rejection_stops_before_deps(self, builder, native, executor, registry_package):
        gate = MagicMock()
        gate.review.return_value = False
        resolver = AsyncMock()
        builder.resolver = resolver

        with pytest.raises(ReviewRejectedError) as exc_info:
            await builder.build("hello-aur", _options(review_gate=gate))

        assert exc_info.value.stage == "review"
        gate.review.assert_called_once()
        assert gate.review.call_args.args[0] is registry_package
        assert gate.review.call_args.args[1].name == "hello-aur"
        resolver.install_missing.assert_not_awaited()
        executor.run.assert_not_awaited()

    async def test_review_skipped_when_disabled(self, builder):
        gate = MagicMock()
        artifacts = await builder.build("hello-aur", _options(review=False, review_gate=gate))
        gate.review.assert_not_called()
        assert [p.name for p in artifacts] == [ARTIFACT]


class TestFetch:
    async def test_clones_into_cache(self, builder, git, test_settings):
        await builder.build("hello-aur", _options())
        url, dest = git.clone.call_args.args
        assert url == "https://aur.archlinux.org/hello-aur.git"
        assert dest == test_settings.cache_dir / "hello-aur"

    async def test_pulls_existing_clone(self, builder, git, sample_pkgbuild, test_settings):
        pkg_dir = test_settings.cache_dir / "hello-aur"
        await _clone_writing(sample_pkgbuild)("", pkg_dir)

        await builder.build("hello-aur", _options())

        git.pull.assert_awaited_once()
        assert git.pull.call_args.args[0] == pkg_dir
        git.clone.assert_not_awaited()

    async def test_failed_pull_reclones(self, builder, git, sample_pkgbuild, test_settings):
        pkg_dir = test_settings.cache_dir / "hello-aur"
        await _clone_writing(sample_pkgbuild)("", pkg_dir)
        (pkg_dir / "stale-file").touch()
        git.pull.side_effect = ProcessError("git exited with code 1", argv=["git"], returncode=1)

        await builder.build("hello-aur", _options())

        git.clone.assert_awaited_once()
        assert not (pkg_dir / "stale-file").exists()

    async def test_clone_failure(self, builder, git, executor):
        git.clone.side_effect = ProcessError("git exited with code 128", argv=["git"], returncode=128)

        with pytest.raises(FetchError) as exc_info:
            await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "fetch"
        assert isinstance(exc_info.value.__cause__, ProcessError)
        executor.run.assert_not_awaited()

    async def test_unremovable_cache_dir(self, builder, git, executor, test_settings):
        pkg_dir = test_settings.cache_dir / "hello-aur"
        pkg_dir.mkdir(parents=True)

        with patch("poxy.aur.builder.shutil.rmtree", side_effect=PermissionError("read-only")):
            with pytest.raises(FetchError) as exc_info:
                await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "fetch"
        assert isinstance(exc_info.value.__cause__, PermissionError)
        git.clone.assert_not_awaited()
        executor.run.assert_not_awaited()


class TestDeps:
    async def test_installs_exactly_missing_subset(self, builder, native, git):
        git.clone.side_effect = _clone_writing("pkgname=foo\npkgver=1\ndepends=('foo>=1.0' 'bar')\n")
        native.is_installed.side_effect = lambda name, cancel=None: name == "bar"
        builder.resolver = DependencyResolver(native)

        await builder.build("foo", _options(as_deps=True))

        native.install.assert_awaited_once()
        assert native.install.call_args.args[0] == ["foo>=1.0"]
        assert native.install.call_args.kwargs["as_deps"] is True

    async def test_dependency_failure(self, builder, native, executor):
        native.is_installed.return_value = False
        native.install.side_effect = ProcessError("pacman exited with code 1", argv=["pacman"], returncode=1)

        with pytest.raises(DependencyError) as exc_info:
            await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "deps"
        executor.run.assert_not_awaited()

    async def test_package_query_failure(self, builder, native, executor):
        native.is_installed.side_effect = PermissionError("pacman: permission denied")

        with pytest.raises(DependencyError) as exc_info:
            await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "deps"
        native.install.assert_not_awaited()
        executor.run.assert_not_awaited()

    async def test_skipped_when_disabled(self, builder, native):
        await builder.build("hello-aur", _options(install_deps=False))
        native.is_installed.assert_not_awaited()


class TestBuildStage:
    async def test_sandboxed_build(self, builder, executor, test_settings):
        artifacts = await builder.build("hello-aur", _options())

        executor.run.assert_awaited_once()
        profile, workdir, command = executor.run.call_args.args
        assert profile.name == "build"
        assert str(test_settings.cache_dir) in profile.bind_read_write
        assert profile.unshare_net is False
        assert profile.is_template is False
        assert workdir == test_settings.cache_dir / "hello-aur"
        assert command == ["makepkg", "-C", "-c"]
        assert artifacts == [workdir / ARTIFACT]

    async def test_setup_failure_retries_directly_once(self, builder, executor):
        executor.run.side_effect = SandboxSetupError("bwrap: No permissions to create new namespace")

        with patch("poxy.aur.builder.run_process", new_callable=AsyncMock, side_effect=_direct_ok) as direct:
            artifacts = await builder.build("hello-aur", _options())

        executor.run.assert_awaited_once()
        direct.assert_awaited_once()
        assert direct.call_args.args[0] == ["makepkg", "-C", "-c"]
        assert len(artifacts) == 1

    async def test_command_failure_never_retries(self, builder, executor):
        executor.run.side_effect = SandboxCommandFailed("makepkg exited with code 4", exit_code=4)

        with patch("poxy.aur.builder.run_process", new_callable=AsyncMock) as direct:
            with pytest.raises(BuildError) as exc_info:
                await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "build"
        assert isinstance(exc_info.value.__cause__, SandboxCommandFailed)
        direct.assert_not_awaited()

    async def test_sandbox_unavailable_builds_directly(self, builder, executor, progress):
        executor.available.return_value = False

        with patch("poxy.aur.builder.run_process", new_callable=AsyncMock, side_effect=_direct_ok) as direct:
            await builder.build("hello-aur", _options(progress=progress))

        executor.run.assert_not_awaited()
        direct.assert_awaited_once()
        progress.notify.assert_any_call("build", "Sandbox unavailable, building directly...")

    async def test_sandbox_disabled(self, builder, executor):
        with patch("poxy.aur.builder.run_process", new_callable=AsyncMock, side_effect=_direct_ok) as direct:
            await builder.build("hello-aur", _options(use_sandbox=False))

        executor.available.assert_not_called()
        direct.assert_awaited_once()
        assert direct.call_args.kwargs["capture"] is False

    async def test_direct_failure(self, builder, executor):
        executor.available.return_value = False
        failed = ProcessResult(argv=["makepkg"], returncode=2)

        with patch("poxy.aur.builder.run_process", new_callable=AsyncMock, return_value=failed):
            with pytest.raises(BuildError):
                await builder.build("hello-aur", _options())

    async def test_makepkg_missing(self, builder, executor):
        executor.available.return_value = False

        with patch("poxy.aur.builder.run_process", new_callable=AsyncMock, side_effect=FileNotFoundError("makepkg")):
            with pytest.raises(BuildError):
                await builder.build("hello-aur", _options())


class TestCollect:
    async def test_no_artifacts(self, builder, executor):
        executor.run.side_effect = None
        executor.run.return_value = ProcessResult(argv=["makepkg"], returncode=0)

        with pytest.raises(NoArtifactsError) as exc_info:
            await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "collect"

    async def test_all_archive_formats(self, builder, executor):
        async def _many(profile, workdir, command, *, cancel=None):
            for name in ("a-1-1-any.pkg.tar.zst", "b-1-1-any.pkg.tar.xz", "c-1-1-any.pkg.tar.gz", "d-1-1-any.pkg.tar"):
                (Path(workdir) / name).touch()
            (Path(workdir) / "notes.txt").touch()
            return ProcessResult(argv=list(command), returncode=0)

        executor.run.side_effect = _many
        artifacts = await builder.build("hello-aur", _options())

        assert [p.name for p in artifacts] == [
            "a-1-1-any.pkg.tar.zst",
            "b-1-1-any.pkg.tar.xz",
            "c-1-1-any.pkg.tar.gz",
            "d-1-1-any.pkg.tar",
        ]


class TestInstall:
    async def test_build_does_not_install(self, builder, native):
        await builder.build("hello-aur", _options())
        native.install_files.assert_not_awaited()

    async def test_build_and_install(self, builder, native):
        artifacts = await builder.build_and_install("hello-aur", _options(as_deps=True, no_confirm=True))

        native.install_files.assert_awaited_once_with(artifacts, as_deps=True, no_confirm=True, cancel=None)

    async def test_install_failure(self, builder, native):
        native.install_files.side_effect = ProcessError("pacman exited with code 1", argv=["pacman"], returncode=1)

        with pytest.raises(InstallError) as exc_info:
            await builder.build_and_install("hello-aur", _options())

        assert exc_info.value.stage == "install"


class TestProgressAndCancellation:
    async def test_stage_notifications_in_order(self, builder, progress):
        await builder.build_and_install("hello-aur", _options(progress=progress))

        stages = [c.args[0] for c in progress.notify.call_args_list]
        assert stages == ["resolve", "fetch", "parse", "review", "deps", "build", "collect", "install"]

    async def test_cancellation_tagged_with_stage(self, builder, git):
        git.clone.side_effect = OperationCancelledError("git was cancelled")

        with pytest.raises(OperationCancelledError) as exc_info:
            await builder.build("hello-aur", _options())

        assert exc_info.value.stage == "fetch"

    async def test_cancel_event_passed_to_collaborators(self, builder, git, executor):
        cancel = asyncio.Event()
        await builder.build("hello-aur", _options(), cancel=cancel)

        assert git.clone.call_args.kwargs["cancel"] is cancel
        assert executor.run.call_args.kwargs["cancel"] is cancel


class TestEndToEnd:
    async def test_unsandboxed_build_with_flagged_recipe(self, builder, git, native, executor, progress):
        content = (
            "pkgname=hello-aur\npkgver=1.0\npkgrel=1\narch=('x86_64')\n"
            "build() {\n  eval $cmd\n}\npackage() {\n  :\n}\n"
        )
        git.clone.side_effect = _clone_writing(content)
        executor.available.return_value = False
        seen = {}

        class RecordingGate:
            def review(self, package, recipe):
                seen["recipe"] = recipe
                return True

        options = _options(progress=progress, review_gate=RecordingGate(), install_deps=False)
        with patch("poxy.aur.builder.run_process", new_callable=AsyncMock, side_effect=_direct_ok):
            artifacts = await builder.build_and_install("hello-aur", options)

        recipe = seen["recipe"]
        assert [(c.line, c.reason) for c in recipe.dangerous_commands] == [(6, "Dynamic code execution")]
        assert len(artifacts) == 1
        native.is_installed.assert_not_awaited()
        native.install.assert_not_awaited()
        native.install_files.assert_awaited_once()
        assert native.install_files.call_args.args[0] == artifacts


class TestCache:
    def test_list_cached_missing_root(self, builder):
        assert builder.list_cached() == []

    def test_list_and_clean(self, builder, test_settings):
        for name in ("zeta", "alpha"):
            (test_settings.cache_dir / name).mkdir(parents=True)
        (test_settings.cache_dir / "stray-file").touch()

        assert builder.list_cached() == ["alpha", "zeta"]

        builder.clean("zeta")
        assert builder.list_cached() == ["alpha"]

        builder.clean("never-cached")
        builder.clean_all()
        assert not test_settings.cache_dir.exists()

    def test_get_cached_recipe(self, builder, test_settings, sample_pkgbuild):
        pkg_dir = test_settings.cache_dir / "hello-aur"
        pkg_dir.mkdir(parents=True)
        (pkg_dir / "PKGBUILD").write_text(sample_pkgbuild)

        assert builder.get_cached_recipe("hello-aur").full_version == "1:1.2.3-2"

    def test_get_cached_recipe_not_cached(self, builder):
        with pytest.raises(PackageNotCachedError):
            builder.get_cached_recipe("nope")


class TestDefaults:
    def test_collaborators_built_from_settings(self, test_settings):
        builder = AURBuilder(settings=test_settings)
        assert builder.cache_dir == test_settings.cache_dir
        assert builder.registry.rpc_url == test_settings.aur_rpc_url
        assert builder.executor.bwrap_path == test_settings.bwrap_path
        assert builder.parser.strategies[0].timeout == test_settings.parse_timeout_seconds
        assert builder.resolver.native is builder.native

    def test_cache_dir_override(self, test_settings, tmp_path):
        assert AURBuilder(tmp_path / "other", settings=test_settings).cache_dir == tmp_path / "other"
