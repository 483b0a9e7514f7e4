"""Configuration system for jout."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass
class PsConfig:
    """Process collection configuration."""

    proc_root: str = "/proc"  # Linux process pseudo-filesystem
    ps_command: str = "ps"  # macOS/BSD table utility
    powershell_command: str = "powershell"  # Windows CIM query host


@dataclass
class OutputConfig:
    """JSON output configuration."""

    indent: int = 2
    ensure_ascii: bool = False


@dataclass
class LoggingConfig:
    """Structured log configuration.

    JSON log lines always go to stderr at ``level``. When ``file_enabled`` is
    set they are also written to a rotating file in the state directory.
    """

    level: str = "warning"
    file_enabled: bool = False
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


@dataclass
class Config:
    """Main configuration container."""

    ps: PsConfig = field(default_factory=PsConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "jout"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "jout"

    @property
    def log_path(self) -> Path:
        """Log file path."""
        return self.state_dir / "jout.log"

    def to_toml(self) -> str:
        """Render all sections as a TOML document."""
        doc = tomlkit.document()
        for name in ("ps", "output", "logging"):
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

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on a missing file are identical.

        Raises:
            ValueError: If the file cannot be parsed or holds invalid values.
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

        return cls(
            ps=_load_ps_config(_section(data, "ps")),
            output=_load_output_config(_section(data, "output")),
            logging=_load_logging_config(_section(data, "logging")),
        )


def _section(data: dict, name: str) -> dict:
    """Return table ``name`` from the document, or {} when absent."""
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{name}] must be a table, got {section!r}")
    return section


def _int_value(data: dict, section: str, key: str, default: int, minimum: int) -> int:
    """Read an integer setting; booleans and non-integers are rejected."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{section}.{key} must be >= {minimum}, got {value}")
    return int(value)


def _load_ps_config(data: dict) -> PsConfig:
    """Load process collection config from TOML data."""
    d = PsConfig()
    return PsConfig(
        proc_root=str(data.get("proc_root", d.proc_root)),
        ps_command=str(data.get("ps_command", d.ps_command)),
        powershell_command=str(data.get("powershell_command", d.powershell_command)),
    )


def _load_output_config(data: dict) -> OutputConfig:
    """Load output config from TOML data."""
    d = OutputConfig()
    return OutputConfig(
        indent=_int_value(data, "output", "indent", d.indent, minimum=0),
        ensure_ascii=bool(data.get("ensure_ascii", d.ensure_ascii)),
    )


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config from TOML data, using dataclass defaults for missing fields."""
    d = LoggingConfig()
    level = str(data.get("level", d.level)).lower()
    if level not in LOG_LEVELS:
        raise ValueError(f"Invalid logging.level: {level!r}. Must be one of {LOG_LEVELS}")

    return LoggingConfig(
        level=level,
        file_enabled=bool(data.get("file_enabled", d.file_enabled)),
        max_bytes=_int_value(data, "logging", "max_bytes", d.max_bytes, minimum=1),
        backup_count=_int_value(data, "logging", "backup_count", d.backup_count, minimum=0),
    )
