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
Packages Dockerfile content into a gzip compressed build context.
"""
import gzip
import io
import logging
import tarfile
import zlib
from typing import Optional

from ..exceptions import ArchiveError
from ..settings import get_settings

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"
DOCKERFILE_MODE = 0o755


class ContextArchiver:
    """
    Builds the tar.gz body the daemon expects for ``/build``.

    The archive holds exactly one regular file named ``Dockerfile``. All
    timestamps are fixed, so identical text always yields identical bytes.
    """

    def __init__(self, mtime: Optional[int] = None, compresslevel: Optional[int] = None):
        """
        Initializes the archiver.

        :param mtime: Modification time stamped on the entry and gzip header.
        :param compresslevel: Deflate level, 0-9.
        """
        settings = get_settings()
        self.mtime = settings.archive_mtime if mtime is None else mtime
        self.compresslevel = settings.compress_level if compresslevel is None else compresslevel

    def build_context(self, text: str) -> bytes:
        """
        Archives and compresses the Dockerfile text.

        :param text: Dockerfile content.
        :return: The gzip compressed tar archive.
        :raises ArchiveError: If the archive cannot be written or compressed.
        """
        try:
            data = text.encode("utf-8")
            uncompressed = self._tar(data)
            compressed = gzip.compress(uncompressed, compresslevel=self.compresslevel, mtime=self.mtime)
        except (tarfile.TarError, zlib.error, OSError, ValueError) as e:
            raise ArchiveError(f"Failed to build context: {e}") from e

        logger.debug("Build context: %d byte Dockerfile, %d byte archive", len(data), len(compressed))
        return compressed

    def _tar(self, data: bytes) -> bytes:
        info = tarfile.TarInfo(name=DOCKERFILE_NAME)
        info.type = tarfile.REGTYPE
        info.size = len(data)
        info.mode = DOCKERFILE_MODE
        info.mtime = self.mtime

        buf = io.BytesIO()
        # The header checksum is computed by tarfile when the header is written
        with tarfile.open(fileobj=buf, mode="w", format=tarfile.GNU_FORMAT) as tar:
            tar.addfile(info, io.BytesIO(data))
        return buf.getvalue()
