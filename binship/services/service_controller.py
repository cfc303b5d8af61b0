"""
Service Controller

Places the binary on the remote host and drives its service unit through
the process supervisor. Supervisor access is expressed as a Protocol so the
orchestrator never depends on systemd directly.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from jinja2 import Template

from binship.constants import BINARY_MODE, REMOTE_TMP_DIR
from binship.exceptions import ServiceControlError
from binship.models.config import DeploymentConfig
from binship.models.results import ExecResult, ServiceStatus
from binship.services.ssh_service import quote

UNIT_TEMPLATE = Template(
    """[Unit]
Description={{ name }} - deployed by binship
After=network.target

[Service]
Type=simple
User={{ user }}
WorkingDirectory={{ install_path }}
ExecStart={{ binary_path }}
Restart=always
RestartSec=5
StandardOutput=journal
StandardError=journal
SyslogIdentifier={{ name }}

# Security settings
NoNewPrivileges=yes
PrivateTmp=yes
ProtectSystem=strict
ReadWritePaths={{ install_path }}
ProtectHome=yes

[Install]
WantedBy=multi-user.target
""",
    keep_trailing_newline=True,
)

STATUS_PROPERTIES = "ActiveState,UnitFileState,MainPID,ExecMainStatus,LoadState"


def render_unit(config: DeploymentConfig) -> str:
    """Render the systemd unit for a config. Same config, same bytes."""
    return UNIT_TEMPLATE.render(
        name=config.binary_name,
        user=config.user,
        install_path=config.install_path.rstrip("/"),
        binary_path=config.remote_binary_path,
    )


@runtime_checkable
class ServiceSupervisor(Protocol):
    """
    Capability interface for managing the remote service.

    Implementations:
        - SystemdController: systemctl over a RemoteSession
    """

    async def prepare_install_dir(self) -> None:
        """Make sure the install directory exists and is writable by the deploy user."""
        ...

    async def place_binary(self) -> None:
        """Atomically move the uploaded staging file into its final path."""
        ...

    async def set_permissions(self) -> None:
        ...

    async def install(self, unit_definition: str) -> bool:
        """Write or verify the unit definition. Returns True when it changed."""
        ...

    async def start(self) -> ServiceStatus:
        ...

    async def stop(self) -> ServiceStatus:
        ...

    async def restart(self) -> ServiceStatus:
        ...

    async def status(self) -> ServiceStatus:
        ...


class SystemdController:
    """ServiceSupervisor backed by systemd on the remote host."""

    def __init__(self, session, config: DeploymentConfig):
        """
        Args:
            session: Connected RemoteSession (or anything with exec/write_text)
            config: Deployment configuration
        """
        self.session = session
        self.config = config
        self.service = config.service_name
        self.sudo = "" if config.user == "root" else "sudo "

    async def _run(self, command: str, action: str) -> ExecResult:
        result = await self.session.exec(command)
        if result.is_failure:
            raise ServiceControlError(
                f"Failed to {action} {self.service}",
                context=result.stderr.strip() or result.stdout.strip() or f"exit code {result.exit_code}",
            )
        return result

    async def prepare_install_dir(self) -> None:
        path = quote(self.config.install_path)
        user = quote(self.config.user)
        await self._run(
            f"{self.sudo}mkdir -p {path} && {self.sudo}chown {user} {path}",
            "prepare install directory for",
        )

    async def place_binary(self) -> None:
        staging = quote(self.config.staging_path)
        target = quote(self.config.remote_binary_path)
        await self._run(f"mv -f {staging} {target}", "place binary for")

    async def set_permissions(self) -> None:
        target = quote(self.config.remote_binary_path)
        user = quote(self.config.user)
        await self._run(
            f"chmod {BINARY_MODE:o} {target} && {self.sudo}chown {user} {target}",
            "set permissions for",
        )

    async def install(self, unit_definition: str) -> bool:
        unit_path = quote(self.config.unit_path)
        existing = await self.session.exec(f"cat {unit_path}")
        if existing.is_success and existing.stdout == unit_definition:
            return False

        tmp_path = f"{REMOTE_TMP_DIR}/{self.service}.binship"
        await self.session.write_text(tmp_path, unit_definition)
        await self._run(f"{self.sudo}mv -f {quote(tmp_path)} {unit_path}", "install unit for")
        await self._run(f"{self.sudo}systemctl daemon-reload", "reload units for")
        await self.enable()
        return True

    async def enable(self) -> None:
        await self._run(f"{self.sudo}systemctl enable {quote(self.service)}", "enable")

    async def start(self) -> ServiceStatus:
        await self._run(f"{self.sudo}systemctl start {quote(self.service)}", "start")
        return await self.status()

    async def stop(self) -> ServiceStatus:
        await self._run(f"{self.sudo}systemctl stop {quote(self.service)}", "stop")
        return await self.status()

    async def restart(self) -> ServiceStatus:
        await self._run(f"{self.sudo}systemctl restart {quote(self.service)}", "restart")
        return await self.status()

    async def status(self) -> ServiceStatus:
        """
        Query the unit state.

        A non-zero exit or a not-found unit means the service is absent,
        which is not a transport failure.
        """
        result = await self.session.exec(
            f"systemctl show {quote(self.service)} --property={STATUS_PROPERTIES}"
        )
        if result.is_failure:
            return ServiceStatus.not_installed()

        props = parse_properties(result.stdout)
        if props.get("LoadState") == "not-found":
            return ServiceStatus.not_installed()

        pid = _int_or_none(props.get("MainPID"))
        active_state = props.get("ActiveState", "unknown")
        return ServiceStatus(
            active=active_state == "active",
            enabled=props.get("UnitFileState") == "enabled",
            pid=pid if pid else None,
            last_exit=_int_or_none(props.get("ExecMainStatus")),
            state=active_state,
        )

    async def last_install_time(self) -> Optional[datetime]:
        """Modification time of the unit file, if installed."""
        result = await self.session.exec(f"stat -c %Y {quote(self.config.unit_path)}")
        seconds = _int_or_none(result.stdout.strip()) if result.is_success else None
        if seconds is None:
            return None
        return datetime.fromtimestamp(seconds)

    async def binary_info(self) -> Optional[str]:
        """`ls -lh` line for the installed binary, if present."""
        result = await self.session.exec(f"ls -lh {quote(self.config.remote_binary_path)}")
        if result.is_failure:
            return None
        return result.stdout.strip()


def parse_properties(output: str) -> dict:
    props = {}
    for line in output.splitlines():
        if "=" in line:
            key, value = line.split("=", 1)
            props[key.strip()] = value.strip()
    return props


def _int_or_none(value: Optional[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
