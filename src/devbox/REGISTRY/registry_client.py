# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Registry client used to confirm that a base image is published before a build.
Implements the manifest lookup of the Docker Registry HTTP API V2.
"""

import base64
import json
from typing import Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ..errors import ResolutionError
from .image_reference import ImageReference

MANIFEST_MEDIA_TYPES = [
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
]


class RegistryClient:
    """
    Client for checking images on Docker Hub and OCI-compatible registries.
    """

    def __init__(self, username: Optional[str] = None, password: Optional[str] = None,
                 timeout: float = 30):
        """
        Initialize the registry client.

        Args:
            username: Optional registry username.
            password: Optional password or access token.
            timeout: Seconds to wait for each HTTP request.
        """
        self.username = username
        self.password = password
        self.timeout = timeout
        self._auth_tokens: Dict[str, str] = {}

    def _basic_auth(self) -> Optional[str]:
        if self.username and self.password:
            auth = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
            return f"Basic {auth}"
        return None

    def _get_auth_token(self, ref: ImageReference) -> Optional[str]:
        """Get an authorization header value for the repository."""
        cache_key = f"{ref.registry}/{ref.repository}"
        if cache_key in self._auth_tokens:
            return self._auth_tokens[cache_key]

        if ref.registry != ImageReference.DEFAULT_REGISTRY:
            return self._basic_auth()

        # Docker Hub uses bearer tokens, also for anonymous pulls
        params = {
            "service": "registry.docker.io",
            "scope": f"repository:{ref.repository}:pull",
        }
        request = Request(f"https://auth.docker.io/token?{urlencode(params)}")
        basic = self._basic_auth()
        if basic:
            request.add_header("Authorization", basic)
        try:
            with urlopen(request, timeout=self.timeout) as response:
                data = json.loads(response.read().decode())
        except (HTTPError, URLError, ValueError) as e:
            raise ResolutionError(f"cannot authenticate to {ref.registry}: {e}",
                                  step="select-base-image") from e
        token = f"Bearer {data['token']}"
        self._auth_tokens[cache_key] = token
        return token

    def manifest_url(self, ref: ImageReference) -> str:
        return f"{ref.registry_url}/v2/{ref.repository}/manifests/{ref.digest or ref.tag}"

    def image_exists(self, ref: ImageReference) -> bool:
        """
        Checks whether the registry serves a manifest for the reference.

        Args:
            ref: A pinned image reference.

        Returns:
            True if the manifest exists, False on 404.

        Raises:
            ResolutionError: If the registry cannot be reached or refuses access.
        """
        request = Request(self.manifest_url(ref), method="HEAD")
        request.add_header("Accept", ", ".join(MANIFEST_MEDIA_TYPES))
        token = self._get_auth_token(ref)
        if token:
            request.add_header("Authorization", token)

        try:
            with urlopen(request, timeout=self.timeout):
                return True
        except HTTPError as e:
            if e.code == 404:
                return False
            raise ResolutionError(f"registry {ref.registry} answered {e.code} for {ref}",
                                  step="select-base-image") from e
        except URLError as e:
            raise ResolutionError(f"cannot reach registry {ref.registry}: {e.reason}",
                                  step="select-base-image") from e

    def require_image(self, ref: ImageReference) -> None:
        """
        Raises:
            ResolutionError: If the image is not published.
        """
        if not self.image_exists(ref):
            raise ResolutionError(f"base image {ref} does not exist in {ref.registry}",
                                  step="select-base-image")
