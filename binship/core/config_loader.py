"""Configuration management for binship projects"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jinja2 import Template

from binship.constants import (
    BUILD_MODES,
    CONFIG_FILE_NAME,
    CONFIG_SEARCH_PATHS,
    DEFAULT_BUILD_MODE,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_HEALTH_TIMEOUT,
    DEFAULT_INSTALL_ROOT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROJECT_PATH,
    DEFAULT_SSH_PORT,
    DEFAULT_TRANSFER_ATTEMPTS,
)
from binship.exceptions import ConfigurationError
from binship.models.config import DeploymentConfig
from binship.models.results import ValidationResult

DEFAULT_CONFIG_TEMPLATE = Template(
    """# binship configuration
project:
  name: {{ name }}
  path: .
  # debug or release
  build_mode: release

deploy:
  host: {{ host }}
  port: 22
  user: deploy
  key_path: ~/.ssh/id_ed25519
  # password: changeme
  install_path: /opt/{{ name }}
  service_name: {{ name }}.service
  transfer_attempts: 3
  command_timeout: 30

monitor:
  health_endpoint: http://{{ host }}:8080/health
  # expect_body: ok
  log_path: /var/log/{{ name }}.log
  interval: 10
  health_timeout: 5
  grace_period: 30
"""
)


class ConfigLoader:
    """Locates, loads and validates binship.yml files"""

    def __init__(self, base_dir: Optional[Path] = None):
        """
        Initialize configuration loader

        Args:
            base_dir: Directory used for relative search paths (default: cwd)
        """
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

    def find_config(self, explicit: Optional[str] = None) -> Path:
        """
        Resolve the config file to use.

        Args:
            explicit: Path given on the command line, if any

        Returns:
            Path to an existing config file

        Raises:
            ConfigurationError: If no config file can be found
        """
        if explicit:
            path = Path(explicit).expanduser()
            if not path.is_absolute():
                path = self.base_dir / path
            if not path.exists():
                raise ConfigurationError(
                    f"Config file not found: {path}",
                    context="Check the --config path",
                )
            return path

        for candidate in CONFIG_SEARCH_PATHS:
            path = Path(candidate).expanduser()
            if not path.is_absolute():
                path = self.base_dir / path
            if path.exists():
                return path

        raise ConfigurationError(
            "No configuration file found",
            context=f"Searched {', '.join(CONFIG_SEARCH_PATHS)}. Run 'binship init' to create one.",
        )

    def read_raw(self, path: Path) -> Dict[str, Any]:
        """Parse a YAML config file into a dict."""
        try:
            with open(path, "r") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}", context=str(e))

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Invalid config in {path}: top level must be a mapping"
            )
        return raw

    def load(self, explicit: Optional[str] = None) -> DeploymentConfig:
        """
        Find, parse and validate configuration.

        Returns:
            Immutable DeploymentConfig

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        path = self.find_config(explicit)
        raw = self.read_raw(path)
        validation = self.validate(raw)
        if not validation.is_valid:
            raise ConfigurationError(
                f"Invalid configuration in {path}",
                context="; ".join(validation.errors),
            )
        return self.build_config(raw, path.parent)

    def validate_file(self, explicit: Optional[str] = None) -> ValidationResult:
        """Validate a config file without raising on content problems."""
        path = self.find_config(explicit)
        try:
            raw = self.read_raw(path)
        except ConfigurationError as e:
            result = ValidationResult()
            result.add_error(e.format_message())
            return result
        return self.validate(raw)

    def validate(self, raw: Dict[str, Any]) -> ValidationResult:
        """Validate raw configuration, collecting every problem."""
        result = ValidationResult()

        project = raw.get("project") or {}
        deploy = raw.get("deploy") or {}
        monitor = raw.get("monitor") or {}

        for section_name, section in (
            ("project", project),
            ("deploy", deploy),
            ("monitor", monitor),
        ):
            if not isinstance(section, dict):
                result.add_error(f"'{section_name}' must be a mapping")
        if not result.is_valid:
            return result

        if not str(project.get("name") or "").strip():
            result.add_error("Missing required field: 'project.name'")

        build_mode = project.get("build_mode", DEFAULT_BUILD_MODE)
        if build_mode not in BUILD_MODES:
            result.add_error(
                f"Invalid build_mode: {build_mode} (must be one of {', '.join(BUILD_MODES)})"
            )

        if not str(project.get("path", DEFAULT_PROJECT_PATH) or "").strip():
            result.add_error("'project.path' cannot be empty")

        if not str(deploy.get("host") or "").strip():
            result.add_error("Missing required field: 'deploy.host'")
        if not str(deploy.get("user") or "").strip():
            result.add_error("Missing required field: 'deploy.user'")

        port = deploy.get("port", DEFAULT_SSH_PORT)
        if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
            result.add_error(f"Invalid port: {port} (must be 1-65535)")

        key_path = deploy.get("key_path")
        password = deploy.get("password")
        if key_path is None and password is None:
            result.add_error("Either 'deploy.key_path' or 'deploy.password' must be set")
        if key_path is not None and not str(key_path).strip():
            result.add_error("'deploy.key_path' cannot be empty")
        if key_path and password is None:
            expanded = Path(str(key_path)).expanduser()
            if not expanded.exists():
                result.add_warning(f"SSH key not found: {expanded}")

        if "install_path" in deploy and not str(deploy["install_path"] or "").strip():
            result.add_error("'deploy.install_path' cannot be empty")

        attempts = deploy.get("transfer_attempts", DEFAULT_TRANSFER_ATTEMPTS)
        if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 1:
            result.add_error(f"Invalid transfer_attempts: {attempts} (must be >= 1)")

        endpoint = monitor.get("health_endpoint")
        if endpoint is not None and not str(endpoint).startswith(("http://", "https://")):
            result.add_error(
                f"Invalid health_endpoint: {endpoint} (must start with http:// or https://)"
            )
        if endpoint is None:
            result.add_warning("No health_endpoint configured; health verification is skipped")

        for key, default in (
            ("interval", DEFAULT_POLL_INTERVAL),
            ("health_timeout", DEFAULT_HEALTH_TIMEOUT),
            ("grace_period", DEFAULT_GRACE_PERIOD),
        ):
            value = monitor.get(key, default)
            if not _is_positive_number(value):
                result.add_error(f"Invalid monitor.{key}: {value} (must be > 0)")

        timeout = deploy.get("command_timeout", DEFAULT_COMMAND_TIMEOUT)
        if not _is_positive_number(timeout):
            result.add_error(f"Invalid deploy.command_timeout: {timeout} (must be > 0)")

        return result

    def build_config(self, raw: Dict[str, Any], config_dir: Path) -> DeploymentConfig:
        """Apply defaults and produce the immutable settings record."""
        project = raw.get("project") or {}
        deploy = raw.get("deploy") or {}
        monitor = raw.get("monitor") or {}

        name = str(project["name"]).strip()

        project_path = Path(str(project.get("path", DEFAULT_PROJECT_PATH))).expanduser()
        if not project_path.is_absolute():
            project_path = (config_dir / project_path).resolve()

        service_name = str(deploy.get("service_name") or f"{name}.service")
        if not service_name.endswith(".service"):
            service_name = f"{service_name}.service"

        key_path = deploy.get("key_path")
        password = deploy.get("password")

        return DeploymentConfig(
            project_path=project_path,
            binary_name=name,
            build_mode=project.get("build_mode", DEFAULT_BUILD_MODE),
            host=str(deploy["host"]).strip(),
            port=deploy.get("port", DEFAULT_SSH_PORT),
            user=str(deploy["user"]).strip(),
            key_path=str(key_path) if key_path is not None else None,
            password=str(password) if password is not None else None,
            install_path=str(deploy.get("install_path") or f"{DEFAULT_INSTALL_ROOT}/{name}"),
            service_name=service_name,
            health_endpoint=monitor.get("health_endpoint"),
            expect_body=monitor.get("expect_body"),
            log_path=monitor.get("log_path"),
            poll_interval=float(monitor.get("interval", DEFAULT_POLL_INTERVAL)),
            health_timeout=float(monitor.get("health_timeout", DEFAULT_HEALTH_TIMEOUT)),
            grace_period=float(monitor.get("grace_period", DEFAULT_GRACE_PERIOD)),
            transfer_attempts=deploy.get("transfer_attempts", DEFAULT_TRANSFER_ATTEMPTS),
            command_timeout=float(deploy.get("command_timeout", DEFAULT_COMMAND_TIMEOUT)),
        )

    def write_default(
        self,
        path: Optional[Path] = None,
        name: str = "my-app",
        host: str = "192.168.1.100",
        force: bool = False,
    ) -> Path:
        """
        Write a starter config file.

        Raises:
            ConfigurationError: If the file exists and force is not set
        """
        target = Path(path) if path else self.base_dir / CONFIG_FILE_NAME
        if target.exists() and not force:
            raise ConfigurationError(
                f"Config file already exists: {target}",
                context="Use --force to overwrite",
            )
        target.write_text(DEFAULT_CONFIG_TEMPLATE.render(name=name, host=host))
        return target


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
