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
Configuration using Pydantic Settings.

Values come from ``DFBUILD_*`` environment variables or a ``.env`` file.
"""
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .MODELS.build import BuilderVersion


class Settings(BaseSettings):
    """dfbuild settings."""

    model_config = SettingsConfigDict(
        env_prefix="DFBUILD_",
        env_file=".env",
        extra="ignore",
    )

    # Docker daemon
    docker_host: Optional[str] = None
    docker_timeout: int = 60

    # Build
    builder_version: BuilderVersion = BuilderVersion.BUILDKIT
    pull: bool = True

    # Build context; a fixed mtime keeps the archive reproducible
    archive_mtime: int = 0
    compress_level: int = 6

    # Registry
    default_region: str = "us-east-1"

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("compress_level")
    @classmethod
    def check_compress_level(cls, v: int) -> int:
        if not 0 <= v <= 9:
            raise ValueError("compress_level must be between 0 and 9")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
