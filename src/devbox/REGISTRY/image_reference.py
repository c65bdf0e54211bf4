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
Base image references.
Parses references like 'rust:1.60' or 'ghcr.io/org/toolchain@sha256:...'
and decides whether they are pinned to a fixed version.
"""

import re
from typing import Optional
from dataclasses import dataclass

from ..errors import ParameterError

# Lowercase path components separated by '.', '_', '__' or '-'
_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")


@dataclass(frozen=True)
class ImageReference:
    """
    Parsed image reference.

    Examples:
        - rust:1.60 -> docker.io/library/rust:1.60 (pinned)
        - rust -> docker.io/library/rust, no tag (not pinned)
        - rust:latest -> not pinned, 'latest' moves
        - localhost:5000/toolchain:v1 -> registry localhost:5000
    """

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    DEFAULT_REGISTRY = "docker.io"
    FLOATING_TAG = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse an image reference string.

        Args:
            reference: Image reference string (e.g., 'rust:1.60').

        Returns:
            Parsed ImageReference object.

        Raises:
            ParameterError: If the reference is empty or malformed.
        """
        original = reference
        reference = (reference or "").strip()
        if not reference:
            raise ParameterError("Empty image reference")

        digest = None
        if "@" in reference:
            reference, digest = reference.rsplit("@", 1)
            if not _DIGEST.match(digest):
                raise ParameterError(f"Invalid digest in image reference '{original}'")

        tag = None
        last_colon = reference.rfind(":")
        if last_colon != -1:
            after_colon = reference[last_colon + 1:]
            # A colon followed by a path is a registry port, not a tag
            if "/" not in after_colon:
                tag = after_colon
                reference = reference[:last_colon]
                if not _TAG.match(tag):
                    raise ParameterError(f"Invalid tag '{tag}' in image reference '{original}'")

        parts = reference.split("/")
        first_part = parts[0]
        if len(parts) > 1 and ("." in first_part or ":" in first_part or first_part == "localhost"):
            registry = first_part
            path = parts[1:]
        else:
            registry = cls.DEFAULT_REGISTRY
            path = parts
            if len(path) == 1:
                path = ["library"] + path

        for component in path:
            if not _COMPONENT.match(component):
                raise ParameterError(f"Invalid repository component '{component}' in '{original}'")

        return cls(registry=registry, repository="/".join(path), tag=tag, digest=digest)

    @property
    def is_pinned(self) -> bool:
        """True when the reference names one fixed image version."""
        if self.digest:
            return True
        return bool(self.tag) and self.tag != self.FLOATING_TAG

    @property
    def full_name(self) -> str:
        """Get full image name with registry."""
        name = f"{self.registry}/{self.repository}"
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name

    @property
    def short_name(self) -> str:
        """Get the name as it is usually written in a FROM line."""
        if self.registry != self.DEFAULT_REGISTRY:
            return self.full_name
        repo = self.repository
        if repo.startswith("library/"):
            repo = repo[len("library/"):]
        if self.tag:
            repo = f"{repo}:{self.tag}"
        if self.digest:
            repo = f"{repo}@{self.digest}"
        return repo

    @property
    def registry_url(self) -> str:
        """Get the registry URL for API calls."""
        if self.registry == self.DEFAULT_REGISTRY:
            return "https://registry-1.docker.io"
        if self.registry.startswith("localhost"):
            return f"http://{self.registry}"
        return f"https://{self.registry}"

    def require_pinned(self) -> "ImageReference":
        """
        Return self, or raise when the reference can drift between builds.

        Raises:
            ParameterError: If neither a version tag nor a digest is present.
        """
        if not self.is_pinned:
            raise ParameterError(
                f"Base image '{self.short_name}' is not pinned; "
                "use an explicit version tag or a digest"
            )
        return self

    def __str__(self) -> str:
        return self.short_name

    def __repr__(self) -> str:
        return f"ImageReference({self.full_name})"
