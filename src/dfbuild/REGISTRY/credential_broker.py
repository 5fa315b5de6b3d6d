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
Registry credentials from Amazon ECR.

Exchanges the caller's AWS identity for an ECR authorization token and
decodes it into the username/password pair the daemon uses to pull.
"""

import base64
import binascii
import logging
import os
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, SecretStr

from ..exceptions import CredentialError
from ..settings import get_settings

logger = logging.getLogger(__name__)

RegionProvider = Callable[[], Optional[str]]


class RegistryCredential(BaseModel):
    """
    A short-lived registry login. The password never appears in reprs.
    """

    username: str
    password: SecretStr
    registry: Optional[str] = None
    expires_at: Optional[datetime] = None

    def as_tuple(self) -> Tuple[str, str]:
        return self.username, self.password.get_secret_value()

    def auth_config(self) -> dict:
        """Entry for the daemon's ``X-Registry-Config`` map."""
        return {
            "username": self.username,
            "password": self.password.get_secret_value(),
            "serveraddress": self.registry,
        }


def explicit_region(region: Optional[str]) -> RegionProvider:
    """Provider that returns the given region, if any."""
    return lambda: region or None


def environment_region() -> Optional[str]:
    """Region from ``AWS_REGION`` / ``AWS_DEFAULT_REGION``."""
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or None


def profile_region() -> Optional[str]:
    """Region from the shared AWS config of the active profile."""
    return boto3.session.Session().region_name


def fallback_region() -> Optional[str]:
    return get_settings().default_region


def default_region_providers(region_hint: Optional[str] = None) -> List[RegionProvider]:
    """The standard chain: hint, environment, AWS config, then the configured fallback."""
    return [explicit_region(region_hint), environment_region, profile_region, fallback_region]


def resolve_region(providers: Sequence[RegionProvider]) -> str:
    """
    Returns the first non-empty region from the providers, in order.

    Raises:
        CredentialError: If no provider yields a region.
    """
    for provider in providers:
        try:
            region = provider()
        except BotoCoreError as e:
            raise CredentialError(f"Region lookup failed: {e}") from e
        if region:
            return region
    raise CredentialError("No AWS region could be resolved")


def decode_authorization_token(token: Optional[str]) -> Tuple[str, str]:
    """
    Splits a base64 ``username:password`` token on its first colon.

    Raises:
        CredentialError: If the token is missing, undecodable or malformed.
    """
    if not token:
        raise CredentialError("Authorization token is missing")
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise CredentialError(f"Authorization token could not be decoded: {e}") from e

    username, sep, password = decoded.partition(":")
    if not sep:
        raise CredentialError("Authorization token is not of the form username:password")
    if not username or not password:
        raise CredentialError("Authorization token has an empty username or password")
    return username, password


class CredentialBroker:
    """
    Fetches ECR credentials for a region.

    Credentials are fetched fresh on every call and never cached.
    """

    def __init__(
        self,
        region_providers: Optional[Callable[[Optional[str]], List[RegionProvider]]] = None,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        """
        Initialize the broker.

        Args:
            region_providers: Builds the provider chain for a region hint.
                Defaults to default_region_providers.
            client_factory: Creates an ECR client for a region. Defaults to boto3.
        """
        self.region_providers = region_providers or default_region_providers
        self.client_factory = client_factory or (lambda region: boto3.client("ecr", region_name=region))

    def credential(self, region_hint: Optional[str] = None) -> RegistryCredential:
        """
        Fetch a registry credential.

        Args:
            region_hint: Region to use before falling back to the environment.

        Returns:
            The decoded credential with its registry endpoint and expiry.
        """
        region = resolve_region(self.region_providers(region_hint))
        logger.info("Requesting ECR authorization token in %s", region)

        try:
            client = self.client_factory(region)
            response = client.get_authorization_token()
        except (BotoCoreError, ClientError) as e:
            raise CredentialError(f"ECR token request failed in {region}: {e}") from e

        data = response.get("authorizationData") or []
        if not data:
            raise CredentialError(f"ECR returned no authorization data in {region}")

        username, password = decode_authorization_token(data[0].get("authorizationToken"))
        credential = RegistryCredential(
            username=username,
            password=password,
            registry=data[0].get("proxyEndpoint"),
            expires_at=data[0].get("expiresAt"),
        )
        logger.info("Obtained ECR credential for %s (expires %s)", credential.registry, credential.expires_at)
        return credential

    def fetch(self, region_hint: Optional[str] = None) -> Tuple[str, str]:
        """
        Fetch a ``(username, password)`` pair.

        Raises:
            CredentialError: If no region resolves, the request fails, or the token is malformed.
        """
        return self.credential(region_hint).as_tuple()
