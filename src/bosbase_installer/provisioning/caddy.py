"""Reverse proxy configuration.

Renders the Caddyfile that routes the public domain to the application and
tells the running Caddy instance to pick it up. Proxy availability is not
fatal to the stack: reload and restart failures are reported as warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from jinja2 import Template

from ..config import ProvisioningConfig
from ..shared.logging import get_logger
from ..shared.paths import SystemPaths
from .command import CommandRunner
from .compose import APP_PORT, BOOSTER_PORT, InstallationLayout
from .files import atomic_write, replace_symlink
from .systemd import Systemctl

log = get_logger(__name__)

PROXY_UNIT = "caddy"
RELOAD_TIMEOUT_SECONDS = 10.0

FORWARDED_HEADERS = (
    ("X-Real-IP", "{remote_host}"),
    ("X-Forwarded-For", "{remote_host}"),
    ("X-Forwarded-Proto", "{scheme}"),
    ("X-Forwarded-Host", "{host}"),
)

UPGRADE_HEADERS = (
    ("Upgrade", "{http.upgrade}"),
    ("Connection", "{http.connection}"),
)

CADDYFILE_TEMPLATE = Template(
    """\
{%- if email -%}
{
	email {{ email }}
}

{% endif -%}
{{ domain }} {
{%- for route in routes %}
	handle{% if route.matcher %} {{ route.matcher }}{% endif %} {
		reverse_proxy {{ route.upstream }} {
{%- for name, value in route.headers %}
			header_up {{ name }} {{ value }}
{%- endfor %}

			transport http {
				max_conns_per_host 0
			}
		}
	}
{%- endfor %}
}

www.{{ domain }} {
	redir https://{{ domain }}{uri} permanent
}
""",
    keep_trailing_newline=True,
)


@dataclass
class ProxyRoute:
    """One handle block in the site definition."""

    upstream: str
    matcher: str | None = None
    headers: tuple[tuple[str, str], ...] = FORWARDED_HEADERS


def default_routes(host: str = "127.0.0.1") -> list[ProxyRoute]:
    """Booster websocket traffic first, then everything else to the API."""
    return [
        ProxyRoute(
            upstream=f"{host}:{BOOSTER_PORT}",
            matcher="/booster*",
            headers=UPGRADE_HEADERS + FORWARDED_HEADERS,
        ),
        ProxyRoute(upstream=f"{host}:{APP_PORT}"),
    ]


def render_caddyfile(
    domain: str, email: str = "", routes: list[ProxyRoute] | None = None
) -> str:
    """Render the Caddyfile.

    Args:
        domain: Bare domain served by the site block.
        email: ACME contact; the global options block is omitted when empty.
        routes: Handle blocks (defaults to default_routes()).

    Returns:
        Caddyfile text.
    """
    return CADDYFILE_TEMPLATE.render(
        domain=domain,
        email=email,
        routes=routes if routes is not None else default_routes(),
    )


@dataclass
class ProxyReloadResult:
    """Outcome of applying the proxy configuration."""

    action: str  # reload, restart, start
    ok: bool
    warnings: list[str] = field(default_factory=list)


class CaddyConfigWriter:
    """Write the Caddyfile and apply it to the running proxy."""

    def __init__(
        self,
        runner: CommandRunner,
        paths: SystemPaths | None = None,
        timeout: float = RELOAD_TIMEOUT_SECONDS,
    ):
        self.runner = runner
        self.paths = paths or SystemPaths()
        self.timeout = timeout
        self.systemctl = Systemctl(runner)

    def write(self, config: ProvisioningConfig, layout: InstallationLayout) -> Path:
        """Write the Caddyfile and link it into Caddy's config location."""
        content = render_caddyfile(config.domain, config.acme_email)
        path = atomic_write(layout.caddyfile, content, mode=0o644)
        replace_symlink(self.paths.caddy_config, path)
        log.info("caddy.written", path=str(path), link=str(self.paths.caddy_config))
        return path

    def apply(self) -> ProxyReloadResult:
        """Reload a running Caddy (restart as fallback) or start a stopped one."""
        if not self.systemctl.is_active(PROXY_UNIT):
            started = self.systemctl.start(PROXY_UNIT, timeout=self.timeout)
            if started.ok:
                log.info("caddy.started")
                return ProxyReloadResult("start", ok=True)
            message = "Caddy start timed out or failed, continuing anyway"
            log.warning("caddy.start_failed", detail=started.describe_failure())
            return ProxyReloadResult("start", ok=False, warnings=[message])

        reloaded = self.systemctl.reload(PROXY_UNIT, timeout=self.timeout)
        if reloaded.ok:
            log.info("caddy.reloaded")
            return ProxyReloadResult("reload", ok=True)

        log.warning("caddy.reload_failed", detail=reloaded.describe_failure())
        warnings = ["Caddy reload timed out or failed, restarted instead"]
        restarted = self.systemctl.restart(PROXY_UNIT, timeout=self.timeout)
        if restarted.ok:
            return ProxyReloadResult("restart", ok=True, warnings=warnings)

        log.warning("caddy.restart_failed", detail=restarted.describe_failure())
        warnings.append("Caddy restart also failed, continuing anyway")
        return ProxyReloadResult("restart", ok=False, warnings=warnings)
