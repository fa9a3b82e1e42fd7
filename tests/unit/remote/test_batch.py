"""Unit tests for RemoteCommandBatch rendering, parsing and dispatch."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from axon.lib.errors import (
    BatchNotExecutedError,
    RemoteExecutionError,
    UnknownCommandError,
)
from axon.models.environment import ServerEndpoint
from axon.remote.batch import MISSING_EXIT_CODE, RemoteCommandBatch, wait_all

SYSTEM = ServerEndpoint(host="proxy.example.com")
APP = ServerEndpoint(host="app.example.com", user="deploy")


def _marker_output(token: str, chunks: list[tuple[int, str, int | None]]) -> str:
    lines: list[str] = []
    for index, text, code in chunks:
        lines.append(f"{token}:START:{index}")
        if text:
            lines.append(text)
        if code is not None:
            lines.append(f"{token}:EXIT:{index}:{code}")
    return "\n".join(lines) + "\n"


class TestRender:
    """Tests for the bash script a batch produces."""

    def test_render_wraps_each_command_with_markers(self) -> None:
        """Each command is announced and reports its exit code."""
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("first", "echo one")
        batch.add("second", "false")

        script = batch.render()

        assert script.startswith("set -o pipefail\n")
        assert f"echo '{batch.token}:START:0'" in script
        assert f"echo '{batch.token}:START:1'" in script
        assert "{ echo one\n} </dev/null 2>&1" in script
        assert f'echo "{batch.token}:EXIT:1:$?"' in script

    def test_render_feeds_stdin_through_heredoc(self) -> None:
        """Standard input is passed with a quoted here-document."""
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("login", "docker login --password-stdin", stdin="hunter2\n")

        script = batch.render()

        delimiter = f"{batch.token}_IN_0"
        assert f"docker login --password-stdin <<'{delimiter}'\nhunter2\n{delimiter}" in script
        assert "</dev/null" not in script

    def test_render_masks_stdin_for_logging(self) -> None:
        """Masked rendering never contains the secret."""
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("login", "docker login --password-stdin", stdin="hunter2")

        assert "hunter2" not in batch.render(mask_stdin=True)
        assert "***" in batch.render(mask_stdin=True)

    def test_duplicate_name_rejected(self) -> None:
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("ps", "docker ps")

        with pytest.raises(ValueError, match="Duplicate"):
            batch.add("ps", "docker ps -a")


class TestParse:
    """Tests for splitting combined output into per-command results."""

    def test_parse_assigns_output_and_exit_codes(self) -> None:
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("ok", "echo hello")
        batch.add("bad", "cat /missing")
        output = _marker_output(
            batch.token, [(0, "hello", 0), (1, "cat: /missing: No such file", 1)]
        )

        results = batch.parse(output)

        assert results["ok"].exit_code == 0
        assert results["ok"].output == "hello"
        assert results["bad"].exit_code == 1
        assert not results["bad"].succeeded
        assert "No such file" in results["bad"].output

    def test_missing_exit_marker_reports_255(self) -> None:
        """A command whose exit marker never arrived did not finish."""
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("first", "echo one")
        batch.add("second", "sleep 100")
        output = _marker_output(batch.token, [(0, "one", 0), (1, "partial", None)])

        results = batch.parse(output)

        assert results["second"].exit_code == MISSING_EXIT_CODE
        assert results["second"].output == "partial"

    def test_output_without_trailing_newline(self) -> None:
        """Output sharing the line of the exit marker is kept."""
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("printf", "printf abc")
        token = batch.token
        output = f"{token}:START:0\nabc{token}:EXIT:0:0\n"

        assert batch.parse(output)["printf"].output == "abc"

    def test_command_never_started(self) -> None:
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("only", "true")

        result = batch.parse("")["only"]

        assert result.exit_code == MISSING_EXIT_CODE
        assert result.output == ""


class TestExecute:
    """Tests for running batches through an executor."""

    def test_results_unavailable_before_execution(self) -> None:
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("ps", "docker ps")

        with pytest.raises(BatchNotExecutedError):
            batch.result("ps")

    def test_unknown_command_name(self, fake_executor) -> None:
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("ps", "docker ps")
        batch.execute(fake_executor)

        with pytest.raises(UnknownCommandError):
            batch.output("pss")

    def test_execute_runs_single_script(self, fake_executor) -> None:
        """All commands of a batch share one remote session."""
        fake_executor.on(r"^hostname$", output="proxy-1")
        fake_executor.on(r"^test -f", exit_code=1)
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("host", "hostname")
        batch.add("exists", "test -f /etc/missing")

        batch.execute(fake_executor)

        assert len(fake_executor.scripts) == 1
        assert batch.output("host") == "proxy-1"
        assert batch.exit_code("exists") == 1
        assert batch.executed

    def test_add_after_execute_rejected(self, fake_executor) -> None:
        batch = RemoteCommandBatch(SYSTEM)
        batch.add("ps", "docker ps")
        batch.execute(fake_executor)

        with pytest.raises(ValueError, match="already been executed"):
            batch.add("more", "true")

    def test_empty_batch_does_not_connect(self, fake_executor) -> None:
        batch = RemoteCommandBatch(SYSTEM).execute(fake_executor)

        assert batch.executed
        assert fake_executor.scripts == []

    def test_stdin_reaches_the_command(self, fake_executor) -> None:
        batch = RemoteCommandBatch(APP)
        batch.add("login", "docker login --password-stdin", stdin="token")

        batch.execute(fake_executor)

        assert fake_executor.commands[0].stdin == "token"
        assert fake_executor.commands[0].command == "docker login --password-stdin"


class TestAsync:
    """Tests for concurrent dispatch to several hosts."""

    def test_two_hosts_joined_with_wait_all(self, fake_executor) -> None:
        """Batches on different hosts report their own results after a join."""
        fake_executor.on(r"^nginx -v$", output="nginx/1.24.0", host=SYSTEM.host)
        fake_executor.on(r"^docker ps$", output="shop-production-1", host=APP.host)
        fake_executor.on(r"^uptime$", exit_code=2, host=APP.host)
        system = RemoteCommandBatch(SYSTEM, label="system")
        system.add("version", "nginx -v")
        app = RemoteCommandBatch(APP, label="app")
        app.add("containers", "docker ps")
        app.add("load", "uptime")

        with ThreadPoolExecutor(max_workers=2) as pool:
            joined = wait_all(
                system.execute_async(fake_executor, pool),
                app.execute_async(fake_executor, pool),
            )

        assert joined == [system, app]
        assert system.output("version") == "nginx/1.24.0"
        assert app.output("containers") == "shop-production-1"
        assert app.exit_code("load") == 2
        assert {c.host for c in fake_executor.commands} == {SYSTEM.host, APP.host}

    def test_wait_all_raises_transport_failure(self, fake_executor) -> None:
        """A host that cannot be reached fails the join after both finish."""
        fake_executor.fail_hosts.add(APP.host)
        system = RemoteCommandBatch(SYSTEM)
        system.add("true", "true")
        app = RemoteCommandBatch(APP)
        app.add("true", "true")

        with ThreadPoolExecutor(max_workers=2) as pool:
            handles = (
                system.execute_async(fake_executor, pool),
                app.execute_async(fake_executor, pool),
            )
            with pytest.raises(RemoteExecutionError):
                wait_all(*handles)

        assert system.executed

    def test_wait_all_timeout_names_the_slow_host(self, fake_executor) -> None:
        unblock = threading.Event()
        run_script = fake_executor.run_script

        def slow_app(endpoint, script):
            if endpoint.host == APP.host:
                unblock.wait(5)
            return run_script(endpoint, script)

        fake_executor.run_script = slow_app
        system = RemoteCommandBatch(SYSTEM, label="system")
        system.add("true", "true")
        app = RemoteCommandBatch(APP, label="app")
        app.add("true", "true")

        with ThreadPoolExecutor(max_workers=2) as pool:
            handles = (
                system.execute_async(fake_executor, pool),
                app.execute_async(fake_executor, pool),
            )
            try:
                with pytest.raises(RemoteExecutionError, match="app") as exc_info:
                    wait_all(*handles, timeout=0.05)
            finally:
                unblock.set()

        assert exc_info.value.host == APP.host
        assert "did not finish within 0.05s" in exc_info.value.message

    def test_handle_wait_timeout(self, fake_executor) -> None:
        unblock = threading.Event()
        run_script = fake_executor.run_script

        def slow(endpoint, script):
            unblock.wait(5)
            return run_script(endpoint, script)

        fake_executor.run_script = slow
        batch = RemoteCommandBatch(APP, label="app")
        batch.add("true", "true")

        with ThreadPoolExecutor(max_workers=1) as pool:
            handle = batch.execute_async(fake_executor, pool)
            try:
                with pytest.raises(RemoteExecutionError, match="did not finish"):
                    handle.wait(timeout=0.05)
            finally:
                unblock.set()
        assert handle.wait().executed
