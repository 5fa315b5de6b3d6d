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
Image reference parsing.
Parses base image references like 'nginx:latest' or
'123456789012.dkr.ecr.eu-west-1.amazonaws.com/app:1.0' and recognizes
ECR registries, which need a token before the daemon can pull from them.
"""

import re
from typing import Optional
from dataclasses import dataclass

ECR_HOST_RE = re.compile(
    r"^(?P<account>\d{12})\.dkr\.ecr(?:-fips)?\.(?P<region>[a-z0-9-]+)\.amazonaws\.com(?:\.cn)?$"
)


@dataclass
class ImageReference:
    """
    Parsed image reference.

    Examples:
        - nginx -> docker.io/library/nginx:latest
        - myuser/myimage:v1 -> docker.io/myuser/myimage:v1
        - 123456789012.dkr.ecr.us-east-1.amazonaws.com/app:1.0 -> ECR in us-east-1
    """

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    DEFAULT_REGISTRY = "docker.io"
    DEFAULT_TAG = "latest"

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """
        Parse an image reference string.

        Args:
            reference: Image reference string (e.g., 'nginx:latest', 'myuser/myimage:v1')

        Returns:
            Parsed ImageReference object.
        """
        if not reference:
            raise ValueError("Empty image reference")

        digest = None
        if "@" in reference:
            reference, digest = reference.rsplit("@", 1)

        # A colon after the last slash is a tag; before it, a registry port
        tag = None
        name, sep, after = reference.rpartition(":")
        if sep and "/" not in after:
            tag = after
            reference = name

        first, slash, rest = reference.partition("/")
        if slash and ("." in first or ":" in first or first == "localhost"):
            registry, repository = first, rest
        elif slash:
            registry, repository = cls.DEFAULT_REGISTRY, reference
        else:
            registry, repository = cls.DEFAULT_REGISTRY, f"library/{reference}"

        if not repository:
            raise ValueError(f"Missing repository in image reference: {reference!r}")

        if not tag and not digest:
            tag = cls.DEFAULT_TAG

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @property
    def full_name(self) -> str:
        """Get full image name with registry."""
        name = f"{self.registry}/{self.repository}"
        if self.digest:
            return f"{name}@{self.digest}"
        if self.tag:
            return f"{name}:{self.tag}"
        return name

    @property
    def is_ecr(self) -> bool:
        """True when the image lives in an Amazon ECR private registry."""
        return ECR_HOST_RE.match(self.registry) is not None

    @property
    def ecr_region(self) -> Optional[str]:
        """Region encoded in an ECR hostname, or None for other registries."""
        match = ECR_HOST_RE.match(self.registry)
        return match.group("region") if match else None
