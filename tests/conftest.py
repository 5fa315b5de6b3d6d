"""
Pytest configuration and fixtures shared by all tests.
"""
import pytest

from dfbuild.settings import get_settings


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Keep settings independent of the developer's environment."""
    for name in ("AWS_REGION", "AWS_DEFAULT_REGION", "AWS_PROFILE", "DOCKER_HOST"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AWS_CONFIG_FILE", "/nonexistent/aws-config")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def multistage_dockerfile():
    return """# syntax=docker/dockerfile:1
ARG BASE=alpine:3.19
FROM $BASE AS builder1
RUN touch bollard.txt
FROM alpine AS builder2
RUN --mount=type=bind,from=builder1,target=mnt cp mnt/bollard.txt buildkit-bollard.txt
EXPOSE 3000
ENTRYPOINT ls buildkit-bollard.txt
"""
