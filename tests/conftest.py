"""Shared fixtures: a routed fake for HTTP and throwaway local repositories."""
from __future__ import annotations

import os
import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from constants import Constants
from resolution.context import ResolutionContext

CENTRAL = Constants.MAVEN_CENTRAL_URL


def pom_xml(group, artifact, version, body=""):
    return (
        "<project>\n"
        f"  <groupId>{group}</groupId>\n"
        f"  <artifactId>{artifact}</artifactId>\n"
        f"  <version>{version}</version>\n"
        f"{body}"
        "</project>\n"
    )


def metadata_xml(group, artifact, versions):
    items = "".join(f"<version>{v}</version>" for v in versions)
    return (
        f"<metadata><groupId>{group}</groupId><artifactId>{artifact}</artifactId>"
        f"<versioning><versions>{items}</versions></versioning></metadata>"
    )


def pom_url(base, group, artifact, version):
    return f"{base}/{group.replace('.', '/')}/{artifact}/{version}/{artifact}-{version}.pom"


def metadata_url(base, group, artifact):
    return f"{base}/{group.replace('.', '/')}/{artifact}/maven-metadata.xml"


class FakeHttp:
    """Serves registered URLs; anything else is a 404."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def serve(self, url, text, status=200):
        self.routes[url] = (status, text)

    def fail(self, url_prefix, exc):
        self.routes[url_prefix] = exc

    def serve_pom(self, group, artifact, version, body="", base=CENTRAL):
        self.serve(pom_url(base, group, artifact, version), pom_xml(group, artifact, version, body))

    def serve_metadata(self, group, artifact, versions, base=CENTRAL):
        self.serve(metadata_url(base, group, artifact), metadata_xml(group, artifact, versions))

    def get(self, url, **kwargs):
        with self._lock:
            self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            for prefix, value in self.routes.items():
                if isinstance(value, Exception) and url.startswith(prefix):
                    route = value
                    break
        if isinstance(route, Exception):
            raise route
        response = MagicMock()
        response.status_code, response.text = route if route is not None else (404, "")
        return response

    def count(self, fragment):
        return sum(1 for url in self.calls if fragment in url)


@pytest.fixture
def fake_http():
    server = FakeHttp()
    with patch("registry.maven.client.http_client.safe_get", side_effect=server.get):
        yield server


@pytest.fixture
def local_repo(tmp_path):
    path = tmp_path / "m2"
    path.mkdir()
    return str(path)


def write_local_pom(local_repo, group, artifact, version, text):
    directory = os.path.join(local_repo, *group.split("."), artifact, version)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"{artifact}-{version}.pom")
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text)
    return path


def make_context(local_repo, repositories=None, **settings):
    config = {
        "local_repository": local_repo,
        "repositories": repositories or [],
        "max_workers": 4,
    }
    config.update(settings)
    return ResolutionContext.from_config(config)


@pytest.fixture
def context(local_repo, monkeypatch):
    monkeypatch.delenv(Constants.ENV_LOCAL_REPOSITORY, raising=False)
    monkeypatch.delenv(Constants.ENV_REQUEST_TIMEOUT, raising=False)
    return make_context(local_repo)


CONNECTION_ERROR = requests.ConnectionError("connection refused")
