"""Unit tests for nginx document rendering."""

from __future__ import annotations

from axon.proxy.nginx import (
    access_log_path,
    config_filename,
    error_log_path,
    parse_upstream_port,
    render_container_artifact,
    render_proxy_site,
    render_static_artifact,
    render_upstream,
    site_path,
    upstream_name,
    upstream_path,
)


class TestNames:
    """Tests for document names and locations."""

    def test_paths(self, container_descriptor) -> None:
        assert config_filename(container_descriptor) == "shop-production.conf"
        assert upstream_path(container_descriptor) == (
            "/etc/nginx/axon.d/upstreams/shop-production.conf"
        )
        assert site_path(container_descriptor) == (
            "/etc/nginx/axon.d/sites/shop-production.conf"
        )

    def test_upstream_name_is_identifier(self, make_descriptor, container_data) -> None:
        container_data["product"]["name"] = "my-shop"
        container_data["environments"] = {
            "Blue Green": {"env_path": "/srv/.env", "image_tag": "v1"}
        }
        descriptor = make_descriptor(container_data, "Blue Green")

        assert upstream_name(descriptor) == "my_shop_blue_green_backend"
        assert config_filename(descriptor) == "my-shop-blue-green.conf"


class TestUpstream:
    """Tests for the upstream document."""

    def test_single_server_entry(self, container_descriptor) -> None:
        document = render_upstream(container_descriptor, 32768)

        assert "upstream shop_production_backend {" in document
        assert document.count("server ") == 1
        assert "server 10.0.0.5:32768;" in document

    def test_port_round_trip(self, container_descriptor) -> None:
        assert parse_upstream_port(render_upstream(container_descriptor, 41000)) == 41000

    def test_parse_absent(self) -> None:
        assert parse_upstream_port("") is None
        assert parse_upstream_port("# nothing here") is None


class TestSites:
    """Tests for the site documents."""

    def test_proxy_site_plain_http(self, container_descriptor) -> None:
        document = render_proxy_site(container_descriptor)

        assert "server_name shop.example.com;" in document
        assert "proxy_pass http://shop_production_backend;" in document
        assert "proxy_read_timeout 60s;" in document
        assert "listen 443" not in document

    def test_proxy_site_tls(self, make_descriptor, container_data) -> None:
        container_data["nginx"] = {
            "ssl": {
                "production": {
                    "certificate": "/etc/ssl/shop.crt",
                    "certificate_key": "/etc/ssl/shop.key",
                }
            },
            "custom_properties": "add_header X-Frame-Options DENY;",
        }
        document = render_proxy_site(make_descriptor(container_data))

        assert "listen 443 ssl;" in document
        assert "return 301 https://$host$request_uri;" in document
        assert "ssl_certificate /etc/ssl/shop.crt;" in document
        assert "add_header X-Frame-Options DENY;" in document

    def test_container_artifact_orders_upstream_first(
        self, container_descriptor
    ) -> None:
        artifact = render_container_artifact(container_descriptor, 32768)

        assert [doc.kind for doc in artifact.documents] == ["upstream", "site"]

    def test_static_artifact(self, static_descriptor) -> None:
        artifact = render_static_artifact(
            static_descriptor, "/var/www/docs/production/current"
        )

        assert [doc.kind for doc in artifact.documents] == ["site"]
        assert "root /var/www/docs/production/current;" in artifact.site.content
        assert "try_files $uri $uri/ /index.html;" in artifact.site.content

    def test_static_site_logs_per_environment(self, static_descriptor) -> None:
        site = render_static_artifact(static_descriptor, "/srv/current").site.content

        assert "access_log /var/log/nginx/docs-production.log;" in site
        assert "error_log /var/log/nginx/docs-production-error.log;" in site
        assert access_log_path(static_descriptor) == (
            "/var/log/nginx/docs-production.log"
        )
        assert error_log_path(static_descriptor) == (
            "/var/log/nginx/docs-production-error.log"
        )
