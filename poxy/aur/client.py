"""AUR RPC v5 client.

Provides package lookup and search against the AUR web API, plus the
trust signals (votes, popularity, maintainer, out-of-date flag) shown in
the PKGBUILD security review.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from poxy import __version__
from poxy.exceptions import PackageNotFoundError, RegistryError

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://aur.archlinux.org/rpc/v5"
DEFAULT_BASE_URL = "https://aur.archlinux.org"
DEFAULT_TIMEOUT = 30.0


class RegistryPackage(BaseModel):
    """An AUR package as returned by the RPC ``info`` and ``search`` calls."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int = Field(default=0, alias="ID")
    name: str = Field(..., alias="Name")
    package_base_id: int = Field(default=0, alias="PackageBaseID")
    package_base: str = Field(..., alias="PackageBase")
    version: str = Field(default="", alias="Version")
    description: str | None = Field(default=None, alias="Description")
    url: str | None = Field(default=None, alias="URL")
    num_votes: int = Field(default=0, alias="NumVotes")
    popularity: float = Field(default=0.0, alias="Popularity")
    out_of_date: int | None = Field(default=None, alias="OutOfDate", description="Unix timestamp")
    maintainer: str | None = Field(default=None, alias="Maintainer")
    submitter: str | None = Field(default=None, alias="Submitter")
    first_submitted: int = Field(default=0, alias="FirstSubmitted")
    last_modified: int = Field(default=0, alias="LastModified")
    url_path: str = Field(default="", alias="URLPath", description="Path to the snapshot tarball")

    depends: list[str] = Field(default_factory=list, alias="Depends")
    make_depends: list[str] = Field(default_factory=list, alias="MakeDepends")
    opt_depends: list[str] = Field(default_factory=list, alias="OptDepends")
    check_depends: list[str] = Field(default_factory=list, alias="CheckDepends")
    conflicts: list[str] = Field(default_factory=list, alias="Conflicts")
    provides: list[str] = Field(default_factory=list, alias="Provides")
    replaces: list[str] = Field(default_factory=list, alias="Replaces")
    groups: list[str] = Field(default_factory=list, alias="Groups")
    license: list[str] = Field(default_factory=list, alias="License")
    keywords: list[str] = Field(default_factory=list, alias="Keywords")

    base_url: str = Field(default=DEFAULT_BASE_URL, exclude=True)

    @property
    def git_clone_url(self) -> str:
        return f"{self.base_url}/{self.package_base}.git"

    @property
    def snapshot_url(self) -> str:
        return f"{self.base_url}{self.url_path}"

    @property
    def is_orphan(self) -> bool:
        return not self.maintainer

    @property
    def is_out_of_date(self) -> bool:
        return self.out_of_date is not None

    @property
    def last_modified_time(self) -> datetime:
        return datetime.fromtimestamp(self.last_modified, tz=UTC)

    @property
    def first_submitted_time(self) -> datetime:
        return datetime.fromtimestamp(self.first_submitted, tz=UTC)

    @property
    def out_of_date_time(self) -> datetime | None:
        if self.out_of_date is None:
            return None
        return datetime.fromtimestamp(self.out_of_date, tz=UTC)

    @property
    def all_dependencies(self) -> list[str]:
        return [*self.depends, *self.make_depends]


class AURClient:
    """Async client for the AUR RPC API.

    Usage:
        client = AURClient()
        pkg = await client.get_package("yay")
        print(pkg.git_clone_url)
    """

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_url: RPC endpoint root
            base_url: AUR web root used to derive clone and snapshot URLs
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.rpc_url = rpc_url.rstrip("/")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def search(self, query: str, *, by: str = "name-desc") -> list[RegistryPackage]:
        """Search packages.

        Args:
            query: Search term
            by: Search field (name, name-desc, maintainer, depends, ...)
        """
        path = f"/search/{quote(query, safe='')}"
        return await self._request(path, params={"by": by})

    async def info(self, *names: str) -> list[RegistryPackage]:
        """Get detailed information about one or more packages."""
        if not names:
            return []
        return await self._request("/info", params=[("arg[]", name) for name in names])

    async def get_package(self, name: str) -> RegistryPackage:
        """Get a single package.

        Raises:
            PackageNotFoundError: no package has this name
            RegistryError: the request failed
        """
        packages = await self.info(name)
        if not packages:
            raise PackageNotFoundError(name)
        return packages[0]

    async def _request(self, path: str, params: Any = None) -> list[RegistryPackage]:
        url = f"{self.rpc_url}{path}"
        headers = {
            "User-Agent": f"poxy/{__version__}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise RegistryError(f"AUR request failed: {e}") from e

        if response.status_code != 200:
            msg = f"AUR API error (status {response.status_code}): {response.text[:200]}"
            raise RegistryError(msg, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise RegistryError(f"failed to parse AUR response: {e}") from e

        if payload.get("error") or payload.get("type") == "error":
            raise RegistryError(f"AUR API error: {payload.get('error', 'unknown error')}")

        try:
            packages = [RegistryPackage.model_validate(item) for item in payload.get("results") or []]
        except ValidationError as e:
            raise RegistryError(f"unexpected AUR result shape: {e}") from e

        for pkg in packages:
            pkg.base_url = self.base_url
        logger.debug("AUR %s returned %d result(s)", path, len(packages))
        return packages


__all__ = ["AURClient", "RegistryPackage"]
