"""Pytest configuration and shared fixtures for Axon tests."""

from __future__ import annotations

import os
import re
import shutil
import tempfile
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from axon.models.environment import EnvironmentDescriptor, ServerEndpoint
from axon.models.project import ProjectConfig

START_PATTERN = re.compile(r"^echo '(AXON_[0-9a-f]+):START:(\d+)'$", re.MULTILINE)

Response = tuple[int, str]


@dataclass
class _Rule:
    pattern: re.Pattern[str]
    responses: list[Response]
    host: str | None = None

    def next_response(self) -> Response:
        # the last response repeats once the sequence is used up
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


@dataclass
class RecordedCommand:
    host: str
    command: str
    stdin: str | None


@dataclass
class FakeExecutor:
    """In-memory stand-in for ``SSHExecutor``.

    Scripts rendered by ``RemoteCommandBatch`` are split back into their
    commands. Each command is answered by the most recently added rule whose
    pattern matches it; unmatched commands succeed with no output.
    """

    rules: list[_Rule] = field(default_factory=list)
    commands: list[RecordedCommand] = field(default_factory=list)
    uploads: list[tuple[str, str, bytes]] = field(default_factory=list)
    scripts: list[str] = field(default_factory=list)
    fail_hosts: set[str] = field(default_factory=set)

    def on(
        self,
        pattern: str,
        exit_code: int = 0,
        output: str = "",
        *,
        host: str | None = None,
        sequence: list[Response] | None = None,
    ) -> FakeExecutor:
        responses = list(sequence) if sequence else [(exit_code, output)]
        self.rules.append(_Rule(re.compile(pattern), responses, host))
        return self

    def respond(self, host: str, command: str) -> Response:
        for rule in reversed(self.rules):
            if rule.host is not None and rule.host != host:
                continue
            if rule.pattern.search(command):
                return rule.next_response()
        return 0, ""

    def run_script(self, endpoint: ServerEndpoint, script: str) -> str:
        from axon.lib.errors import RemoteExecutionError

        if endpoint.host in self.fail_hosts:
            raise RemoteExecutionError(endpoint.host, "connection refused")
        self.scripts.append(script)

        output: list[str] = []
        for token, index, body, stdin in _split_script(script):
            self.commands.append(RecordedCommand(endpoint.host, body, stdin))
            code, text = self.respond(endpoint.host, body)
            output.append(f"{token}:START:{index}")
            if text:
                output.append(text)
            output.append(f"{token}:EXIT:{index}:{code}")
        return "\n".join(output) + "\n"

    def stream(
        self, endpoint: ServerEndpoint, command: str, write: Callable[[str], None]
    ) -> int:
        from axon.lib.errors import RemoteExecutionError

        if endpoint.host in self.fail_hosts:
            raise RemoteExecutionError(endpoint.host, "connection refused")
        self.commands.append(RecordedCommand(endpoint.host, command, None))
        code, text = self.respond(endpoint.host, command)
        if text:
            write(text)
        return code

    def upload(
        self, endpoint: ServerEndpoint, content: bytes, remote_path: str
    ) -> None:
        self.uploads.append((endpoint.host, remote_path, content))

    def ran(self, pattern: str, host: str | None = None) -> list[RecordedCommand]:
        """Commands matching ``pattern``, in execution order."""
        regex = re.compile(pattern)
        return [
            c
            for c in self.commands
            if regex.search(c.command) and (host is None or c.host == host)
        ]


def _split_script(script: str) -> list[tuple[str, int, str, str | None]]:
    matches = list(START_PATTERN.finditer(script))
    commands = []
    for position, match in enumerate(matches):
        token, index = match.group(1), int(match.group(2))
        end = matches[position + 1].start() if position + 1 < len(matches) else None
        block = script[match.end() + 1 : end]
        # block is "{ BODY\n} REDIRECT && echo ... || echo ..."
        body = block[2 : block.rindex("\n} ")]
        stdin = None
        heredoc = f" <<'{token}_IN_{index}'\n"
        if heredoc in body:
            body, _, rest = body.partition(heredoc)
            stdin = rest[: rest.rindex(f"\n{token}_IN_{index}")]
        commands.append((token, index, body, stdin))
    return commands


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


def container_project_data(**overrides: Any) -> dict[str, Any]:
    """Minimal valid configuration of a container product."""
    data: dict[str, Any] = {
        "product": {"name": "shop", "type": "docker"},
        "servers": {
            "system": {"host": "proxy.example.com", "user": "root"},
            "application": {
                "host": "app.example.com",
                "user": "deploy",
                "private_ip": "10.0.0.5",
            },
        },
        "registry": {
            "provider": "docker_hub",
            "docker_hub": {
                "username": "acme",
                "access_token": "s3cret-token",
                "repository": "shop",
            },
        },
        "docker": {"container_port": 3000},
        "health_check": {"max_retries": 3, "retry_interval": 1},
        "environments": {
            "production": {
                "env_path": "/srv/shop/.env.production",
                "image_tag": "stable",
                "domain": "shop.example.com",
            },
        },
    }
    data.update(overrides)
    return data


def static_project_data(**overrides: Any) -> dict[str, Any]:
    """Minimal valid configuration of a static product."""
    data: dict[str, Any] = {
        "product": {"name": "docs", "type": "static"},
        "servers": {"system": {"host": "proxy.example.com", "user": "root"}},
        "static": {"keep_releases": 3, "required_files": ["index.html"]},
        "environments": {
            "production": {
                "deploy_path": "/var/www/docs",
                "domain": "docs.example.com",
            },
        },
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_descriptor() -> Callable[..., EnvironmentDescriptor]:
    """Build a descriptor from project data, e.g. ``make_descriptor(data)``."""

    def _make(
        data: dict[str, Any] | None = None, environment: str = "production"
    ) -> EnvironmentDescriptor:
        project = ProjectConfig(**(data or container_project_data()))
        return project.resolve(environment)

    return _make


@pytest.fixture
def container_descriptor(
    make_descriptor: Callable[..., EnvironmentDescriptor],
) -> EnvironmentDescriptor:
    return make_descriptor(container_project_data())


@pytest.fixture
def static_descriptor(
    make_descriptor: Callable[..., EnvironmentDescriptor],
) -> EnvironmentDescriptor:
    return make_descriptor(static_project_data())


@pytest.fixture
def container_data() -> dict[str, Any]:
    """Mutable container product configuration for one test."""
    return container_project_data()


@pytest.fixture
def static_data() -> dict[str, Any]:
    """Mutable static product configuration for one test."""
    return static_project_data()
