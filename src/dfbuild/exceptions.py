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
Exception hierarchy for dfbuild.

Each component raises its own error kind; the underlying cause is always
chained so callers can report both.
"""
from typing import Any, Dict, Optional


class DfbuildError(Exception):
    """Base exception for all dfbuild errors."""

    kind = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class ParseError(DfbuildError):
    """Malformed Dockerfile instruction syntax."""

    kind = "parse error"

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message, {"line": line})


class ArchiveError(DfbuildError):
    """Failure while constructing or compressing the build context."""

    kind = "archive error"


class CredentialError(DfbuildError):
    """Registry token missing, undecodable or malformed, or the token endpoint failed."""

    kind = "credential error"


class DaemonConnectionError(DfbuildError, ConnectionError):
    """The Docker daemon could not be reached."""

    kind = "connection error"


class BuildError(DfbuildError):
    """
    The daemon reported a failed build.

    ``aux`` holds the last auxiliary payload received before the failure, if any.
    """

    kind = "build error"

    def __init__(self, message: str, aux: Any = None):
        self.aux = aux
        super().__init__(message, {"aux": aux})
