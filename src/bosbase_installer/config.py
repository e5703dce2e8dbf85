"""Installer configuration resolution.

Each configuration field can come from an explicit flag, an environment
variable, an optional YAML config file or an interactive prompt.
Precedence (highest to lowest):
1. CLI flags
2. Environment variables
3. Config file (--config-file)
4. Interactive prompt
5. Values from the .env file of a previous install (secrets and OpenAI
   settings only, skipped when data is reset)
6. Generated value (secrets) or built-in default

The sources are passed to ConfigResolver explicitly so resolution can be
exercised against synthetic inputs without touching the process environment.
"""

from __future__ import annotations

import os
import re
import secrets
import shlex
import string
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol

import questionary
import yaml

from .errors import ConfigurationError
from .shared.logging import get_logger
from .shared.paths import DEFAULT_INSTALL_DIR, ENV_FILE

log = get_logger(__name__)

ENCRYPTION_KEY_LENGTH = 32
POSTGRES_PASSWORD_LENGTH = 16

PASSWORD_ALPHABET = string.ascii_letters + string.digits

TRUTHY = {"1", "true", "yes", "on"}

_HOST_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
DOMAIN_RE = re.compile(rf"^{_HOST_LABEL}(?:\.{_HOST_LABEL})*$")


def generate_encryption_key() -> str:
    """Return a 32 character hex key (16 random bytes)."""
    return secrets.token_hex(ENCRYPTION_KEY_LENGTH // 2)


def generate_postgres_password() -> str:
    """Return a 16 character alphanumeric password."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(POSTGRES_PASSWORD_LENGTH))


def default_target_user() -> str:
    """The user that invoked sudo, else the login name, else root."""
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user:
        return sudo_user
    try:
        return os.getlogin() or "root"
    except OSError:
        return "root"


@dataclass(frozen=True)
class FieldSpec:
    """How one configuration field is looked up, prompted for and defaulted."""

    name: str
    flag: str
    env_vars: tuple[str, ...]
    required: bool = False
    prompt: str | None = None
    secret_length: int | None = None
    generator: Callable[[], str] | None = None
    default: Callable[[], str] | None = None

    @property
    def env_var(self) -> str:
        return self.env_vars[0]


FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(
        "domain",
        "--domain",
        ("BOSBASE_DOMAIN",),
        required=True,
        prompt="Enter the domain that should point to this host:",
    ),
    FieldSpec(
        "acme_email",
        "--email",
        ("BOSBASE_ACME_EMAIL",),
        prompt="Enter email for ACME (optional, press Enter to skip):",
    ),
    FieldSpec("openai_api_key", "--openai-key", ("OPENAI_API_KEY",)),
    FieldSpec("openai_base_url", "--openai-base-url", ("OPENAI_BASE_URL",)),
    FieldSpec(
        "encryption_key",
        "--encryption-key",
        ("BS_ENCRYPTION_KEY",),
        secret_length=ENCRYPTION_KEY_LENGTH,
        generator=generate_encryption_key,
    ),
    FieldSpec(
        "postgres_password",
        "--postgres-password",
        ("POSTGRES_PASSWORD",),
        secret_length=POSTGRES_PASSWORD_LENGTH,
        generator=generate_postgres_password,
    ),
    FieldSpec(
        "install_dir",
        "--install-dir",
        ("BOSBASE_INSTALL_DIR",),
        default=lambda: str(DEFAULT_INSTALL_DIR),
    ),
    FieldSpec(
        "target_user",
        "--user",
        ("BOSBASE_USER",),
        default=default_target_user,
    ),
)

# Boolean switches: field name -> environment variable
SWITCHES = {
    "non_interactive": "BOSBASE_NON_INTERACTIVE",
    "reset_data": "BOSBASE_RESET_DATA",
}

FIELDS_BY_NAME = {spec.name: spec for spec in FIELDS}

KNOWN_KEYS = set(FIELDS_BY_NAME) | set(SWITCHES)


@dataclass(frozen=True)
class ProvisioningConfig:
    """Fully resolved, immutable installer configuration."""

    domain: str
    encryption_key: str
    postgres_password: str
    install_dir: Path
    target_user: str
    acme_email: str = ""
    openai_api_key: str = ""
    openai_base_url: str = ""
    non_interactive: bool = False
    reset_data: bool = False

    # Track where each value came from
    sources: Mapping[str, str] = field(default_factory=dict, compare=False)
    generated: frozenset[str] = field(default_factory=frozenset, compare=False)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self.sources.get(key, "default")

    def redacted(self) -> dict[str, Any]:
        """Config values safe for logging, with secrets masked."""
        masked = {"encryption_key", "postgres_password", "openai_api_key"}
        values = {}
        for spec in FIELDS:
            value = str(getattr(self, spec.name))
            values[spec.name] = "***" if spec.name in masked and value else value
        return values


class ConfigSource(Protocol):
    """A place configuration values can be read from."""

    name: str

    def lookup(self, spec: FieldSpec) -> str | None: ...

    def switch(self, key: str) -> bool | None: ...


class FlagSource:
    """Values passed explicitly on the command line, keyed by field name."""

    name = "flag"

    def __init__(self, values: Mapping[str, Any]):
        self.values = values

    def lookup(self, spec: FieldSpec) -> str | None:
        value = self.values.get(spec.name)
        return str(value) if value not in (None, "") else None

    def switch(self, key: str) -> bool | None:
        # click flags are False when absent, which means "not set" here
        return True if self.values.get(key) else None


class EnvironmentSource:
    """Values from environment variables."""

    name = "environment"

    def __init__(self, environ: Mapping[str, str] | None = None):
        self.environ = os.environ if environ is None else environ

    def lookup(self, spec: FieldSpec) -> str | None:
        for var in spec.env_vars:
            if self.environ.get(var):
                return self.environ[var]
        return None

    def switch(self, key: str) -> bool | None:
        raw = self.environ.get(SWITCHES[key])
        if not raw:
            return None
        return raw.strip().lower() in TRUTHY


class FileSource:
    """Values from a YAML mapping of field name to value."""

    name = "config file"

    def __init__(self, values: Mapping[str, Any]):
        self.values = values

    @classmethod
    def load(cls, path: Path) -> FileSource:
        """Load a YAML config file.

        Args:
            path: Path to the YAML file.

        Returns:
            FileSource over the file's mapping.

        Raises:
            ConfigurationError: If the file is unreadable, not a mapping, or
                names an unknown key.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        normalized = {str(k).replace("-", "_"): v for k, v in data.items()}
        unknown = sorted(set(normalized) - KNOWN_KEYS)
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in config file {path}: {', '.join(unknown)}",
                hint=f"valid keys: {', '.join(sorted(KNOWN_KEYS))}",
            )
        return cls(normalized)

    def lookup(self, spec: FieldSpec) -> str | None:
        value = self.values.get(spec.name)
        return str(value) if value not in (None, "") else None

    def switch(self, key: str) -> bool | None:
        value = self.values.get(key)
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUTHY


class PreviousInstallSource:
    """Secrets and OpenAI settings from the .env file a previous run wrote.

    Kept data directories only work with the password and encryption key
    they were created with.
    """

    name = "previous install"

    REUSED = frozenset(
        {"encryption_key", "postgres_password", "openai_api_key", "openai_base_url"}
    )

    def __init__(self, values: Mapping[str, str]):
        self.values = values

    @classmethod
    def load(cls, path: Path) -> PreviousInstallSource | None:
        """Read KEY=value lines from an env file.

        Args:
            path: Path to the env file.

        Returns:
            PreviousInstallSource, or None if the file does not exist.

        Raises:
            ConfigurationError: If the file exists but cannot be parsed.
        """
        if not path.exists():
            return None

        values: dict[str, str] = {}
        try:
            with open(path) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, raw = line.split("=", 1)
                    tokens = shlex.split(raw)
                    values[key.strip()] = tokens[0] if tokens else ""
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"Cannot read previous settings from {path}: {e}",
                hint="fix or remove the file, or pass --reset-data",
            ) from e
        return cls(values)

    def lookup(self, spec: FieldSpec) -> str | None:
        if spec.name not in self.REUSED:
            return None
        return self.values.get(spec.env_var) or None

    def switch(self, key: str) -> bool | None:
        return None


Prompter = Callable[[FieldSpec], str | None]


def questionary_prompt(spec: FieldSpec) -> str | None:
    """Ask the operator for a value on the terminal.

    Returns None if the prompt was cancelled (Ctrl-C).
    """
    return questionary.text(spec.prompt or f"{spec.name}:").ask()


class ConfigResolver:
    """Merge configuration sources into a ProvisioningConfig."""

    def __init__(
        self,
        sources: list[ConfigSource],
        prompter: Prompter | None = None,
    ):
        """Initialize resolver.

        Args:
            sources: Sources in priority order (first wins).
            prompter: Callable used to ask for missing values interactively.
        """
        self.sources = sources
        self.prompter = prompter or questionary_prompt

    def resolve(self) -> ProvisioningConfig:
        """Resolve and validate every field.

        Returns:
            ProvisioningConfig with all required fields populated.

        Raises:
            ConfigurationError: If a required value is missing in
                non-interactive mode, or a value fails validation.
        """
        sources: dict[str, str] = {}
        switches: dict[str, bool] = {}
        for key in SWITCHES:
            switches[key], sources[key] = self._resolve_switch(key)

        non_interactive = switches["non_interactive"]
        previous = None if switches["reset_data"] else self._previous_install()
        values: dict[str, str] = {}
        generated: set[str] = set()

        for spec in FIELDS:
            value, source = self._lookup(spec)
            if value is None and previous is not None:
                value = previous.lookup(spec)
                if value is not None:
                    log.info("config.reused", field=spec.name)
                    source = previous.name

            if value is None and spec.required:
                if non_interactive:
                    raise ConfigurationError(
                        f"Missing required value for {spec.name}. Provide via "
                        f"{spec.flag}, {spec.env_var}, or interactive prompt.",
                        field=spec.name,
                    )
                value, source = self._prompt_required(spec), "prompt"
            elif value is None and spec.prompt and not non_interactive:
                answer = self._prompt_optional(spec)
                if answer:
                    value, source = answer, "prompt"

            if value is None and spec.generator is not None:
                log.info("config.generated", field=spec.name)
                value, source = spec.generator(), "generated"
                generated.add(spec.name)

            if value is None and spec.default is not None:
                value, source = spec.default(), "default"

            values[spec.name] = value or ""
            sources[spec.name] = source

        self._validate(values)

        config = ProvisioningConfig(
            domain=values["domain"],
            encryption_key=values["encryption_key"],
            postgres_password=values["postgres_password"],
            install_dir=Path(values["install_dir"]),
            target_user=values["target_user"],
            acme_email=values["acme_email"],
            openai_api_key=values["openai_api_key"],
            openai_base_url=values["openai_base_url"],
            non_interactive=non_interactive,
            reset_data=switches["reset_data"],
            sources=MappingProxyType(sources),
            generated=frozenset(generated),
        )
        log.debug("config.resolved", **config.redacted())
        return config

    def _lookup(self, spec: FieldSpec) -> tuple[str | None, str]:
        for source in self.sources:
            value = source.lookup(spec)
            if value is not None:
                # Secrets are validated verbatim
                if spec.secret_length is None:
                    value = value.strip()
                return value, source.name
        return None, "default"

    def _previous_install(self) -> PreviousInstallSource | None:
        install_dir, _ = self._lookup(FIELDS_BY_NAME["install_dir"])
        root = Path(install_dir) if install_dir else DEFAULT_INSTALL_DIR
        if not root.is_absolute():
            # Rejected by validation later
            return None
        return PreviousInstallSource.load(root / ENV_FILE)

    def _resolve_switch(self, key: str) -> tuple[bool, str]:
        for source in self.sources:
            value = source.switch(key)
            if value is not None:
                return value, source.name
        return False, "default"

    def _prompt_required(self, spec: FieldSpec) -> str:
        while True:
            answer = self.prompter(spec)
            if answer is None:
                raise ConfigurationError(f"{spec.name} is required.", field=spec.name)
            answer = answer.strip()
            if answer:
                return answer
            log.warning("config.required", field=spec.name)

    def _prompt_optional(self, spec: FieldSpec) -> str:
        answer = self.prompter(spec)
        return (answer or "").strip()

    def _validate(self, values: dict[str, str]) -> None:
        for spec in FIELDS:
            if spec.secret_length is None:
                continue
            value = values[spec.name]
            if len(value) != spec.secret_length:
                raise ConfigurationError(
                    f"{spec.env_var} must be exactly {spec.secret_length} characters "
                    f"(got {len(value)}).",
                    field=spec.name,
                )

        domain = values["domain"]
        if not DOMAIN_RE.match(domain):
            raise ConfigurationError(
                f"Invalid domain '{domain}'.",
                hint="use a bare host name such as example.com, without scheme or path",
                field="domain",
            )

        email = values["acme_email"]
        if email and (email.count("@") != 1 or any(c.isspace() for c in email)):
            raise ConfigurationError(f"Invalid ACME email '{email}'.", field="acme_email")

        if not Path(values["install_dir"]).is_absolute():
            raise ConfigurationError(
                f"Installation directory must be an absolute path (got {values['install_dir']}).",
                field="install_dir",
            )

        if not values["target_user"]:
            raise ConfigurationError("Target user must not be empty.", field="target_user")
