"""nginx document rendering for Axon environments.

Every environment owns two documents in the axon directory on the system
server: an upstream document naming the live backend and a site document
with the server blocks. Static environments only have a site document.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from jinja2 import Template

if TYPE_CHECKING:
    from axon.models.environment import EnvironmentDescriptor

UPSTREAM_PORT_PATTERN = re.compile(r"server\s+[^\s;]+:(\d+)")

UPSTREAM_TEMPLATE = """\
# Managed by axon for {{ product }} ({{ environment }}); do not edit.
# Generated at: {{ created }}
upstream {{ upstream_name }} {
    server {{ address }}:{{ port }};
}
"""

_SERVER_NAME_AND_TLS = """\
{% if tls %}
server {
    listen 80;
    listen [::]:80;
    server_name {{ domain }};
    return 301 https://$host$request_uri;
}

server {
    listen 443 ssl;
    listen [::]:443 ssl;
    server_name {{ domain }};

    ssl_certificate {{ tls.certificate }};
    ssl_certificate_key {{ tls.certificate_key }};
    ssl_protocols TLSv1.2 TLSv1.3;
    ssl_prefer_server_ciphers on;
{% else %}
server {
    listen 80;
    listen [::]:80;
    server_name {{ domain }};
{% endif %}
"""

PROXY_SITE_TEMPLATE = (
    """\
# Managed by axon for {{ product }} ({{ environment }}); do not edit.
# Generated at: {{ created }}
"""
    + _SERVER_NAME_AND_TLS
    + """\

    client_max_body_size 100M;

    location / {
        proxy_pass http://{{ upstream_name }};
        proxy_http_version 1.1;
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection "upgrade";

        proxy_connect_timeout {{ proxy.timeout }};
        proxy_send_timeout {{ proxy.timeout }};
        proxy_read_timeout {{ proxy.timeout }};

        proxy_buffer_size {{ proxy.buffer_size }};
        proxy_buffers {{ proxy.buffers }};
        proxy_busy_buffers_size {{ proxy.busy_buffers_size }};
{% for line in custom_lines %}
        {{ line }}
{% endfor %}
    }
}
"""
)

STATIC_SITE_TEMPLATE = (
    """\
# Managed by axon for {{ product }} ({{ environment }}); do not edit.
# Generated at: {{ created }}
"""
    + _SERVER_NAME_AND_TLS
    + """\

    root {{ root }};
    index index.html;

    access_log {{ access_log }};
    error_log {{ error_log }};

    location / {
        try_files $uri $uri/ /index.html;
{% for line in custom_lines %}
        {{ line }}
{% endfor %}
    }

    location ~* \\.(?:css|js|jpg|jpeg|gif|png|svg|ico|woff2?|ttf)$ {
        expires 30d;
        add_header Cache-Control "public, immutable";
        try_files $uri =404;
    }
}
"""
)


def normalize_environment(environment: str) -> str:
    """Lowercase and replace spaces with hyphens."""
    return environment.lower().replace(" ", "-")


def config_filename(descriptor: EnvironmentDescriptor) -> str:
    """File name shared by the upstream and site documents."""
    return f"{descriptor.product}-{normalize_environment(descriptor.environment)}.conf"


def upstream_name(descriptor: EnvironmentDescriptor) -> str:
    """nginx upstream block name, ``{product}_{env}_backend``."""
    name = f"{descriptor.product}_{normalize_environment(descriptor.environment)}"
    return f"{name}_backend".replace("-", "_")


def upstream_path(descriptor: EnvironmentDescriptor) -> str:
    paths = descriptor.nginx.paths
    return posixpath.join(paths.upstreams_dir, config_filename(descriptor))


def site_path(descriptor: EnvironmentDescriptor) -> str:
    return posixpath.join(descriptor.nginx.paths.sites_dir, config_filename(descriptor))


def access_log_path(descriptor: EnvironmentDescriptor) -> str:
    """nginx access log of a static site."""
    name = f"{descriptor.product}-{normalize_environment(descriptor.environment)}"
    return posixpath.join(descriptor.nginx.paths.log_dir, f"{name}.log")


def error_log_path(descriptor: EnvironmentDescriptor) -> str:
    name = f"{descriptor.product}-{normalize_environment(descriptor.environment)}"
    return posixpath.join(descriptor.nginx.paths.log_dir, f"{name}-error.log")


def parse_upstream_port(document: str) -> int | None:
    """Return the backend port bound in an upstream document, if any."""
    match = UPSTREAM_PORT_PATTERN.search(document)
    return int(match.group(1)) if match else None


@dataclass(frozen=True)
class ProxyDocument:
    """One nginx document and its active location.

    Attributes:
        kind: ``upstream`` or ``site``
        path: Active path under the axon directory
        content: Rendered document text
    """

    kind: str
    path: str
    content: str


@dataclass(frozen=True)
class ProxyConfigArtifact:
    """The documents that make up an environment's nginx configuration."""

    site: ProxyDocument
    upstream: ProxyDocument | None = None

    @property
    def documents(self) -> list[ProxyDocument]:
        docs = [self.site]
        if self.upstream is not None:
            docs.insert(0, self.upstream)
        return docs


def _common_context(descriptor: EnvironmentDescriptor) -> dict[str, object]:
    custom = descriptor.nginx.custom_properties or ""
    return {
        "product": descriptor.product,
        "environment": descriptor.environment,
        "created": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "domain": descriptor.domain,
        "tls": descriptor.tls if descriptor.tls_enabled else None,
        "proxy": descriptor.nginx.proxy,
        "custom_lines": [line.strip() for line in custom.splitlines() if line.strip()],
    }


def render_upstream(descriptor: EnvironmentDescriptor, port: int) -> str:
    """Render the upstream document pointing at ``port`` on the app server."""
    assert descriptor.application_server is not None  # nosec B101
    template = Template(UPSTREAM_TEMPLATE)
    return template.render(
        product=descriptor.product,
        environment=descriptor.environment,
        created=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        upstream_name=upstream_name(descriptor),
        address=descriptor.application_server.upstream_address,
        port=port,
    )


def render_proxy_site(descriptor: EnvironmentDescriptor) -> str:
    """Render the reverse proxy site document."""
    template = Template(PROXY_SITE_TEMPLATE, trim_blocks=True, lstrip_blocks=True)
    return template.render(
        upstream_name=upstream_name(descriptor), **_common_context(descriptor)
    )


def render_static_site(descriptor: EnvironmentDescriptor, root: str) -> str:
    """Render the static site document serving files from ``root``."""
    template = Template(STATIC_SITE_TEMPLATE, trim_blocks=True, lstrip_blocks=True)
    return template.render(
        root=root,
        access_log=access_log_path(descriptor),
        error_log=error_log_path(descriptor),
        **_common_context(descriptor),
    )


def render_container_artifact(
    descriptor: EnvironmentDescriptor, live_port: int
) -> ProxyConfigArtifact:
    """Render both documents for a container environment."""
    return ProxyConfigArtifact(
        site=ProxyDocument(
            "site", site_path(descriptor), render_proxy_site(descriptor)
        ),
        upstream=ProxyDocument(
            "upstream",
            upstream_path(descriptor),
            render_upstream(descriptor, live_port),
        ),
    )


def render_static_artifact(
    descriptor: EnvironmentDescriptor, root: str
) -> ProxyConfigArtifact:
    """Render the site document for a static environment."""
    return ProxyConfigArtifact(
        site=ProxyDocument(
            "site", site_path(descriptor), render_static_site(descriptor, root)
        ),
    )
