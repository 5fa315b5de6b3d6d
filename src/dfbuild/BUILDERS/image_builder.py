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
Builds images on a Docker daemon from in-memory Dockerfile content.

The build context is archived locally, posted to the engine's ``/build``
endpoint with BuildKit selected, and the streamed response is exposed as a
lazy sequence of auxiliary events.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterator, Optional

import docker
import requests
from docker.auth import encode_header
from docker.errors import APIError, DockerException, StreamParseError
from docker.utils import kwargs_from_env

from ..exceptions import BuildError, DaemonConnectionError, ParseError
from ..MODELS.build import AuxInfo, BuildRequest, parse_build_event
from ..PARSERS.dockerfile_parser import DockerfileAnalyzer
from ..REGISTRY.credential_broker import CredentialBroker, RegistryCredential
from ..REGISTRY.image_reference import ImageReference
from ..settings import Settings, get_settings
from .context_archiver import DOCKERFILE_NAME, ContextArchiver

logger = logging.getLogger(__name__)


class DaemonHandle:
    """
    A connected Docker daemon.

    Wraps docker's low-level ``APIClient``; ``close()`` releases its HTTP session.
    """

    def __init__(self, api: docker.APIClient):
        self.api = api

    def stream_build(self, params: Dict[str, str], context: bytes,
                     headers: Dict[str, str]) -> Iterator[Dict[str, Any]]:
        """
        Posts a build and yields the decoded JSON chunks of the response.

        The HTTP response is closed however iteration ends.
        """
        response = self.api._post(
            self.api._url("/build"),
            params=params,
            data=context,
            headers=headers,
            stream=True,
            timeout=None,
        )
        try:
            self.api._raise_for_status(response)
            for chunk in self.api._stream_helper(response, decode=True):
                yield chunk
        finally:
            response.close()

    def close(self):
        self.api.close()

    def __enter__(self) -> "DaemonHandle":
        return self

    def __exit__(self, *exc_info):
        self.close()


class BuildOrchestrator:
    """
    Submits builds and consumes their event streams.
    """

    def __init__(self,
                 archiver: Optional[ContextArchiver] = None,
                 broker: Optional[CredentialBroker] = None,
                 analyzer: Optional[DockerfileAnalyzer] = None,
                 settings: Optional[Settings] = None):
        """
        Initializes the orchestrator.

        :param archiver: Builds the compressed context.
        :param broker: Fetches credentials for private base images.
        :param analyzer: Parses Dockerfiles for base images and ports.
        :param settings: Daemon and build settings.
        """
        self.settings = settings or get_settings()
        self.archiver = archiver or ContextArchiver()
        self.broker = broker or CredentialBroker()
        self.analyzer = analyzer or DockerfileAnalyzer()

    def connect(self) -> DaemonHandle:
        """
        Connects to the daemon at ``docker_host``, or the one the environment points at.

        :raises DaemonConnectionError: If the daemon cannot be reached.
        """
        if self.settings.docker_host:
            kwargs = {"base_url": self.settings.docker_host}
        else:
            kwargs = kwargs_from_env()

        try:
            api = docker.APIClient(version="auto", timeout=self.settings.docker_timeout, **kwargs)
            api.ping()
        except (DockerException, requests.exceptions.ConnectionError) as e:
            raise DaemonConnectionError(f"Cannot connect to the Docker daemon: {e}") from e

        logger.info("Connected to Docker daemon at %s (API %s)", api.base_url, api.api_version)
        return DaemonHandle(api)

    def build_request(self, image_id: str) -> BuildRequest:
        return BuildRequest(
            tag=image_id,
            dockerfile_path=DOCKERFILE_NAME,
            builder=self.settings.builder_version,
            pull=self.settings.pull,
            session=image_id,
        )

    def submit(self, handle: DaemonHandle, image_id: str, dockerfile_text: str,
               credentials: Optional[Dict[str, RegistryCredential]] = None) -> Iterator[AuxInfo]:
        """
        Submits a build of ``dockerfile_text`` tagged ``image_id``.

        The request is only sent once iteration starts. Only auxiliary events
        are yielded; plain log lines are dropped.

        :param handle: Connected daemon.
        :param image_id: Used as both the tag and the build session ID.
        :param dockerfile_text: Dockerfile content.
        :param credentials: Registry logins keyed by registry host.
        :raises ArchiveError: If the context cannot be built.
        :return: Single-pass iterator of AuxInfo; raises BuildError on failure.
        """
        context = self.archiver.build_context(dockerfile_text)
        return self._events(handle, self.build_request(image_id), context, credentials or {})

    def build(self, handle: DaemonHandle, image_id: str, dockerfile_text: str,
              region: Optional[str] = None) -> Iterator[AuxInfo]:
        """
        Full build flow: analyze, fetch any ECR credentials while archiving, submit.

        :param region: Region hint for base images whose registry does not name one.
        """
        doc = self.analyzer.parse(dockerfile_text)
        try:
            port = self.analyzer.extract_exposed_port(doc)
        except ParseError as e:
            logger.warning("Ignoring EXPOSE in %s: %s", image_id, e)
            port = None
        if port:
            logger.info("Image %s exposes port %d", image_id, port)

        registries = self.ecr_registries(doc)
        if not registries:
            return self.submit(handle, image_id, dockerfile_text)

        # Archival and token exchange are independent
        with ThreadPoolExecutor(max_workers=len(registries) + 1) as pool:
            context_future = pool.submit(self.archiver.build_context, dockerfile_text)
            credential_futures = {
                host: pool.submit(self.broker.credential, host_region or region)
                for host, host_region in registries.items()
            }
            context = context_future.result()
            credentials = {host: f.result() for host, f in credential_futures.items()}

        return self._events(handle, self.build_request(image_id), context, credentials)

    def ecr_registries(self, doc) -> Dict[str, Optional[str]]:
        """Maps each ECR registry host the base images come from to its region."""
        registries: Dict[str, Optional[str]] = {}
        for image in self.analyzer.base_images(doc):
            try:
                ref = ImageReference.parse(image)
            except ValueError:
                logger.warning("Ignoring unparsable base image %s", image)
                continue
            if ref.is_ecr:
                logger.info("Base image %s needs ECR credentials", ref.full_name)
                registries[ref.registry] = ref.ecr_region
        return registries

    def _events(self, handle: DaemonHandle, request: BuildRequest, context: bytes,
                credentials: Dict[str, RegistryCredential]) -> Iterator[AuxInfo]:
        headers = {"Content-Type": "application/tar", "Content-Encoding": "gzip"}
        if credentials:
            headers["X-Registry-Config"] = encode_header(
                {host: cred.auth_config() for host, cred in credentials.items()}
            ).decode("ascii")

        last_aux: Optional[AuxInfo] = None
        chunks = handle.stream_build(request.to_params(), context, headers)
        logger.info("Building %s", request.tag)
        try:
            for chunk in chunks:
                event = parse_build_event(chunk)
                if event is None:
                    continue
                if event.kind == "log":
                    logger.debug("%s: %s", request.tag, event.text.rstrip())
                    continue
                if event.kind == "error":
                    logger.error("Build of %s failed: %s", request.tag, event.message)
                    raise BuildError(event.message, aux=last_aux.payload if last_aux else None)
                last_aux = event
                yield event
        except APIError as e:
            raise BuildError(f"Build request failed: {e.explanation or e}",
                             aux=last_aux.payload if last_aux else None) from e
        except StreamParseError as e:
            raise BuildError(f"Malformed build stream: {e}",
                             aux=last_aux.payload if last_aux else None) from e
        except requests.exceptions.RequestException as e:
            raise DaemonConnectionError(f"Lost connection to the Docker daemon: {e}") from e
        finally:
            chunks.close()

        logger.info("Build of %s finished", request.tag)
