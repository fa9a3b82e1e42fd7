"""Unit tests for ProxyConfigManager stage/validate/commit/revert."""

from __future__ import annotations

import pytest

from axon.lib.errors import ProxyConfigError
from axon.proxy.manager import ABSENT_EXIT_CODE, ProxyConfigManager, ProxySnapshot
from axon.proxy.nginx import render_container_artifact, site_path, upstream_path

NGINX_OK = (
    "nginx: the configuration file /etc/nginx/nginx.conf syntax is ok\n"
    "nginx: configuration file /etc/nginx/nginx.conf test is successful"
)
NGINX_BAD = (
    'nginx: [emerg] unexpected "}" in /tmp/x.conf:12\n'
    "nginx: configuration file /tmp/x.conf test failed"
)


class TestSnapshot:
    """Tests for reading active documents."""

    def test_absent_and_present_documents(
        self, fake_executor, container_descriptor
    ) -> None:
        up, site = upstream_path(container_descriptor), site_path(container_descriptor)
        fake_executor.on(r"upstreams/shop-production\.conf", output="upstream x {}")
        fake_executor.on(r"sites/shop-production\.conf", exit_code=ABSENT_EXIT_CODE)

        snapshot = ProxyConfigManager(container_descriptor, fake_executor).snapshot(
            [up, site]
        )

        assert snapshot.get(up) == "upstream x {}"
        assert snapshot.get(site) is None

    def test_unreadable_document(self, fake_executor, container_descriptor) -> None:
        fake_executor.on(r"cat ", exit_code=1, output="Permission denied")

        with pytest.raises(ProxyConfigError):
            ProxyConfigManager(container_descriptor, fake_executor).snapshot(
                [upstream_path(container_descriptor)]
            )


class TestApply:
    """Tests for the full stage, validate, commit and reload flow."""

    def test_successful_apply(self, fake_executor, container_descriptor) -> None:
        fake_executor.on(r"nginx -t -c", output=NGINX_OK)
        manager = ProxyConfigManager(container_descriptor, fake_executor)

        manager.apply(render_container_artifact(container_descriptor, 32768))

        commands = [c.command for c in fake_executor.commands]
        validate_at = next(i for i, c in enumerate(commands) if "nginx -t -c" in c)
        install_at = next(i for i, c in enumerate(commands) if "mv -f" in c)
        reload_at = commands.index("nginx -s reload")
        assert validate_at < install_at < reload_at
        # staged copy is cleaned up last
        assert commands[-1].startswith("rm -rf /tmp/axon-stage-shop-production-")

        writes = [c for c in fake_executor.commands if c.stdin is not None]
        assert any("server 10.0.0.5:32768;" in (c.stdin or "") for c in writes)
        assert all("/etc/nginx/axon.d/" not in c.command for c in writes)

    def test_validation_failure_leaves_active_dir_untouched(
        self, fake_executor, container_descriptor
    ) -> None:
        fake_executor.on(r"nginx -t -c", exit_code=1, output=NGINX_BAD)
        manager = ProxyConfigManager(container_descriptor, fake_executor)

        with pytest.raises(ProxyConfigError) as exc_info:
            manager.apply(render_container_artifact(container_descriptor, 32768))

        assert "unexpected" in (exc_info.value.diagnostics or "")
        assert fake_executor.ran(r"mv -f") == []
        assert fake_executor.ran(r"nginx -s reload") == []
        assert fake_executor.ran(r"^rm -rf /tmp/axon-stage-")

    def test_exit_zero_without_success_text_fails(
        self, fake_executor, container_descriptor
    ) -> None:
        fake_executor.on(r"nginx -t -c", output="nginx: warning only")
        manager = ProxyConfigManager(container_descriptor, fake_executor)

        with pytest.raises(ProxyConfigError):
            manager.apply(render_container_artifact(container_descriptor, 32768))
        assert fake_executor.ran(r"mv -f") == []

    def test_reload_failure(self, fake_executor, container_descriptor) -> None:
        fake_executor.on(r"nginx -t -c", output=NGINX_OK)
        fake_executor.on(r"nginx -s reload", exit_code=1, output="nginx not running")
        manager = ProxyConfigManager(container_descriptor, fake_executor)

        with pytest.raises(ProxyConfigError, match="reload"):
            manager.apply(render_container_artifact(container_descriptor, 32768))

    def test_commit_requires_validation(
        self, fake_executor, container_descriptor
    ) -> None:
        manager = ProxyConfigManager(container_descriptor, fake_executor)
        staged = manager.stage(render_container_artifact(container_descriptor, 1))

        with pytest.raises(ProxyConfigError, match="not passed validation"):
            manager.commit(staged)

    def test_sudo_for_non_root_user(
        self, fake_executor, make_descriptor, container_data
    ) -> None:
        container_data["servers"]["system"]["user"] = "ubuntu"
        descriptor = make_descriptor(container_data)
        fake_executor.on(r"nginx -t -c", output=NGINX_OK)

        ProxyConfigManager(descriptor, fake_executor).apply(
            render_container_artifact(descriptor, 32768)
        )

        assert fake_executor.ran(r"^sudo nginx -s reload$")


class TestRevert:
    """Tests for restoring documents after a failed switch."""

    def test_revert_without_commit_is_noop(
        self, fake_executor, container_descriptor
    ) -> None:
        manager = ProxyConfigManager(container_descriptor, fake_executor)

        manager.revert(ProxySnapshot({upstream_path(container_descriptor): "old"}))

        assert fake_executor.commands == []

    def test_revert_restores_committed_documents(
        self, fake_executor, container_descriptor
    ) -> None:
        up, site = upstream_path(container_descriptor), site_path(container_descriptor)
        fake_executor.on(r"nginx -t -c", output=NGINX_OK)
        manager = ProxyConfigManager(container_descriptor, fake_executor)
        manager.apply(render_container_artifact(container_descriptor, 40000))
        fake_executor.commands.clear()

        old = "upstream old { server 10.0.0.5:31000; }"
        manager.revert(ProxySnapshot({up: old, site: None}))

        restored = fake_executor.ran(r"tee .*upstreams/shop-production\.conf\.axon-tmp")
        assert restored[0].stdin == "upstream old { server 10.0.0.5:31000; }"
        assert fake_executor.ran(rf"^rm -f {site}$")

    def test_remove_documents(self, fake_executor, container_descriptor) -> None:
        up, site = upstream_path(container_descriptor), site_path(container_descriptor)

        ProxyConfigManager(container_descriptor, fake_executor).remove_documents([up, site])

        assert fake_executor.commands[0].command == f"rm -f {up} {site}"
