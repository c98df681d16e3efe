"""Base image resolution for build descriptions.

This module handles:
- Parsing image references (registry, repository, tag/digest)
- Checking base images against the local image store
- Checking base images against their remote registry (v2 manifest API,
  anonymous Bearer token flow)

A recipe whose base image is neither local nor found upstream cannot be
built; that is reported before any build step runs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from cross_imagegen.errors import BuildDescriptionUnresolvableError
from cross_imagegen.images.docker import DockerClient
from cross_imagegen.targets.description import BuildDescription

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "docker.io"
DOCKER_HUB_API_HOST = "registry-1.docker.io"

MANIFEST_ACCEPT = ", ".join(
    [
        "application/vnd.oci.image.index.v1+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    ]
)

_AUTH_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class ImageReference:
    """A parsed image reference.

    Attributes:
        registry: Registry host (``docker.io`` for Docker Hub).
        repository: Repository path inside the registry.
        reference: Tag or digest.
    """

    registry: str
    repository: str
    reference: str

    @property
    def api_host(self) -> str:
        if self.registry == DEFAULT_REGISTRY:
            return DOCKER_HUB_API_HOST
        return self.registry

    @property
    def manifest_url(self) -> str:
        scheme = "http" if self.registry.startswith("localhost") else "https"
        return f"{scheme}://{self.api_host}/v2/{self.repository}/manifests/{self.reference}"


def parse_image_reference(image: str) -> ImageReference:
    """Parse an image reference as docker does.

    Args:
        image: Reference such as ``ubuntu:16.04``, ``ghcr.io/org/img@sha256:...``.

    Returns:
        ImageReference with registry, repository and tag/digest.

    Raises:
        ValueError: If the reference is empty.
    """
    if not image:
        raise ValueError("empty image reference")

    name = image
    reference = "latest"
    if "@" in name:
        name, reference = name.split("@", 1)
    else:
        last = name.rsplit("/", 1)[-1]
        if ":" in last:
            name, reference = name.rsplit(":", 1)

    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        registry, repository = first, rest
    else:
        registry, repository = DEFAULT_REGISTRY, name

    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = f"library/{repository}"

    return ImageReference(registry=registry, repository=repository, reference=reference)


def parse_www_authenticate(header: str) -> dict[str, str]:
    """Parse a Bearer ``WWW-Authenticate`` challenge into its parameters."""
    scheme, _, params = header.partition(" ")
    if scheme.lower() != "bearer":
        return {}
    return dict(_AUTH_PARAM_RE.findall(params))


class BaseImageChecker:
    """Checks that the base images of a recipe can be obtained.

    Results are memoized per checker, since many targets of a matrix
    usually share the same base image.
    """

    def __init__(
        self,
        docker: DockerClient,
        client: httpx.Client | None = None,
        offline: bool = False,
        timeout: float = 30,
    ) -> None:
        self.docker = docker
        self.client = client
        self.offline = offline
        self.timeout = timeout
        self._resolved: dict[str, str | None] = {}

    def ensure_resolvable(self, description: BuildDescription) -> list[str]:
        """Check every base image of a build description.

        Args:
            description: Build description whose recipe is checked.

        Returns:
            The checked base image references.

        Raises:
            BuildDescriptionUnresolvableError: If any base image is unavailable.
        """
        try:
            bases = description.base_images()
        except OSError as e:
            raise BuildDescriptionUnresolvableError(
                description.target, str(description.recipe_path), f"unreadable recipe: {e}"
            ) from e

        for image in bases:
            reason = self.check(image)
            if reason is not None:
                raise BuildDescriptionUnresolvableError(description.target, image, reason)
            logger.debug("[%s] Base image %s is resolvable", description.target, image)
        return bases

    def check(self, image: str) -> str | None:
        """Check a single image.

        Returns:
            None if the image is available, otherwise the reason it is not.
        """
        if image not in self._resolved:
            self._resolved[image] = self._check(image)
        return self._resolved[image]

    def _check(self, image: str) -> str | None:
        if self.docker.image_exists(image):
            return None
        if self.offline:
            return "not present locally and offline mode is enabled"
        try:
            ref = parse_image_reference(image)
        except ValueError as e:
            return str(e)

        if self.client is not None:
            return self._check_remote(self.client, ref)
        with httpx.Client(follow_redirects=True) as client:
            return self._check_remote(client, ref)

    def _check_remote(self, client: httpx.Client, ref: ImageReference) -> str | None:
        headers = {"Accept": MANIFEST_ACCEPT}
        try:
            response = client.head(ref.manifest_url, headers=headers, timeout=self.timeout)
            if response.status_code == 401:
                token = self._fetch_token(
                    client, response.headers.get("www-authenticate", ""), ref
                )
                if token:
                    headers["Authorization"] = f"Bearer {token}"
                    response = client.head(
                        ref.manifest_url, headers=headers, timeout=self.timeout
                    )
        except httpx.TimeoutException:
            return f"timeout contacting {ref.api_host}"
        except httpx.RequestError as e:
            return f"network error contacting {ref.api_host}: {e}"

        if response.status_code == 200:
            return None
        if response.status_code == 404:
            return f"manifest {ref.repository}:{ref.reference} not found on {ref.registry}"
        return f"{ref.registry} returned HTTP {response.status_code}"

    def _fetch_token(
        self,
        client: httpx.Client,
        challenge: str,
        ref: ImageReference,
    ) -> str | None:
        params = parse_www_authenticate(challenge)
        realm = params.pop("realm", None)
        if not realm:
            return None
        params.setdefault("scope", f"repository:{ref.repository}:pull")
        response = client.get(realm, params=params, timeout=self.timeout)
        if response.status_code != 200:
            logger.debug("Token request to %s returned %d", realm, response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            logger.debug("Token response from %s is not JSON", realm)
            return None
        if not isinstance(data, dict):
            logger.debug("Token response from %s is not a JSON object", realm)
            return None
        return data.get("token") or data.get("access_token")


__all__ = [
    "BaseImageChecker",
    "ImageReference",
    "parse_image_reference",
    "parse_www_authenticate",
]
