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
Models for build requests and the events a daemon streams back.
"""
import logging
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class BuilderVersion(str, Enum):
    """Builder backend selected through the engine's ``version`` parameter."""

    LEGACY = "1"
    BUILDKIT = "2"


class BuildRequest(BaseModel):
    """
    Parameters for a single ``/build`` call.
    """
    tag: str
    dockerfile_path: str = "Dockerfile"
    builder: BuilderVersion = BuilderVersion.BUILDKIT
    pull: bool = True
    session: str

    def to_params(self) -> Dict[str, str]:
        """
        Render the request as engine API query parameters.
        """
        return {
            "t": self.tag,
            "dockerfile": self.dockerfile_path,
            "version": self.builder.value,
            "pull": "1" if self.pull else "0",
            "session": self.session,
        }


class AuxInfo(BaseModel):
    """
    Builder-specific structured progress.

    For BuildKit the ``moby.buildkit.trace`` payload is a base64 encoded
    status message; ``moby.image.id`` carries the resulting image ID.
    """
    kind: Literal["aux"] = "aux"
    id: Optional[str] = None
    payload: Any = None


class ErrorInfo(BaseModel):
    """Terminal failure reported by the daemon."""
    kind: Literal["error"] = "error"
    message: str


class LogLine(BaseModel):
    """Plain textual build output."""
    kind: Literal["log"] = "log"
    text: str


BuildEvent = Union[AuxInfo, ErrorInfo, LogLine]


def parse_build_event(chunk: Dict[str, Any]) -> Optional[BuildEvent]:
    """
    Classify one decoded JSON chunk from the build stream.

    Args:
        chunk: Decoded JSON object from the daemon.

    Returns:
        The matching event, or None for chunks that carry nothing we know.
    """
    if "error" in chunk or "errorDetail" in chunk:
        detail = chunk.get("errorDetail") or {}
        message = detail.get("message") or chunk.get("error") or "unknown build error"
        return ErrorInfo(message=message)
    if "aux" in chunk:
        return AuxInfo(id=chunk.get("id"), payload=chunk["aux"])
    if "stream" in chunk:
        return LogLine(text=chunk["stream"])
    if "status" in chunk:
        return LogLine(text=chunk["status"])
    logger.debug("Ignoring unrecognized build chunk with keys %s", sorted(chunk))
    return None
