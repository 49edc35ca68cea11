"""Configuration system for sysdash."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

from sysdash.launchers import DEFAULT_SEARCH_URL


@dataclass
class SamplingConfig:
    """Sampling cadence and history configuration."""

    metrics_interval: float = 1.0  # Seconds between hardware samples
    process_interval: float = 3.0  # Seconds between process enumerations
    history_length: int = 60  # Samples kept per chart (one minute at 1Hz)
    network_min_interval: float = 0.5  # Min seconds between network updates


@dataclass
class ProcessesConfig:
    """Process list actions."""

    search_url: str = DEFAULT_SEARCH_URL  # {query} is replaced with the process name


@dataclass
class LoggingConfig:
    """Log file configuration."""

    level: str = "INFO"
    max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


def _coerce(section: str, name: str, value: object, default: object) -> object:
    """Check a TOML value against the type of its default; ints are accepted for floats."""
    if isinstance(value, bool) or not isinstance(value, type(default)):
        if isinstance(default, float) and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        raise ValueError(
            f"{section}.{name} must be {type(default).__name__}, got {type(value).__name__}"
        )
    return value


def _load_section(section: str, section_cls: type, data: dict) -> object:
    """Build a section dataclass from TOML data, using dataclass defaults for missing fields.

    Raises ValueError if a value has the wrong type.
    """
    if not isinstance(data, dict):
        raise ValueError(f"[{section}] must be a table")
    defaults = section_cls()
    values = {}
    for f in fields(section_cls):
        default = getattr(defaults, f.name)
        value = data.get(f.name, default)
        # tomlkit returns its own wrapper types; unwrap to plain Python values
        value = value.unwrap() if hasattr(value, "unwrap") else value
        values[f.name] = _coerce(section, f.name, value, default)
    return section_cls(**values)


@dataclass
class Config:
    """Main configuration container."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    processes: ProcessesConfig = field(default_factory=ProcessesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "sysdash"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "sysdash"

    @property
    def log_path(self) -> Path:
        return self.state_dir / "sysdash.log"

    def validate(self) -> None:
        """Raise ValueError if any value is out of range."""
        sampling = self.sampling
        for name in ("metrics_interval", "process_interval", "network_min_interval"):
            if getattr(sampling, name) <= 0:
                raise ValueError(f"sampling.{name} must be positive, got {getattr(sampling, name)}")
        if sampling.history_length < 1:
            raise ValueError(
                f"sampling.history_length must be at least 1, got {sampling.history_length}"
            )
        if "{query}" not in self.processes.search_url:
            raise ValueError("processes.search_url must contain {query}")

    def to_toml(self) -> str:
        doc = tomlkit.document()
        for name in ("sampling", "processes", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_toml())

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions - no hardcoded values here.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        config = cls(
            sampling=_load_section("sampling", SamplingConfig, data.get("sampling", {})),
            processes=_load_section("processes", ProcessesConfig, data.get("processes", {})),
            logging=_load_section("logging", LoggingConfig, data.get("logging", {})),
        )
        config.validate()
        return config
