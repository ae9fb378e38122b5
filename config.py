"""Configuration management for Spendtree.

Reads configuration from ~/.config/spendtree.toml and creates default config if needed.
"""

from pathlib import Path
from dataclasses import dataclass
import tomllib
import tomli_w

DEFAULT_MAX_DEPTH = 10
DEFAULT_ICON = "bi-folder"
DEFAULT_COLOR = "#dc2626"
DEFAULT_INDENT_MARKER = "— "


@dataclass
class Config:
    """Application configuration."""

    base_dir: Path
    db_data_dir: Path
    db_filename: str
    log_level: str
    log_dir: Path
    user_id: int = 1
    max_depth: int = DEFAULT_MAX_DEPTH
    default_icon: str = DEFAULT_ICON
    default_color: str = DEFAULT_COLOR
    indent_marker: str = DEFAULT_INDENT_MARKER

    @property
    def db_path(self) -> Path:
        """Get the full database path (data_dir/filename)."""
        return self.db_data_dir / self.db_filename

    @classmethod
    def default(cls) -> "Config":
        """Create a Config with default values."""
        home = Path.home()
        base_dir = home / "data" / "spendtree"
        return cls(
            base_dir=base_dir,
            db_data_dir=base_dir / "db",
            db_filename="spendtree.db",
            log_level="INFO",
            log_dir=base_dir / "logs",
        )


def get_config_path() -> Path:
    """Get the path to the config file."""
    return Path.home() / ".config" / "spendtree.toml"


def get_migrations_dir() -> Path:
    """Get the path to the migrations directory.

    This is always relative to the code location, not configurable.
    """
    return Path(__file__).parent / "db" / "migrations"


def get_seed_file() -> Path:
    """Get the path to the default category seed file."""
    return Path(__file__).parent / "db" / "seed" / "categories.json"


def load_config() -> Config:
    """Load configuration from file, creating default if it doesn't exist.

    Returns:
        Config object with loaded or default values.
    """
    config_path = get_config_path()

    # If config doesn't exist, create it with defaults
    if not config_path.exists():
        config = Config.default()
        _write_config(config)
        return config

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    return _parse_config(data)


def _parse_config(data: dict) -> Config:
    """Build a Config from parsed TOML data, filling in defaults.

    Args:
        data: Dictionary as returned by tomllib.

    Returns:
        Config object.
    """
    base_dir = Path(data.get("base_dir", Path.home() / "data" / "spendtree"))

    db_config = data.get("database", {})
    db_data_dir = Path(db_config.get("data_dir", base_dir / "db"))
    db_filename = db_config.get("filename", "spendtree.db")

    log_config = data.get("logging", {})
    log_level = log_config.get("level", "INFO")
    log_dir = Path(log_config.get("log_dir", base_dir / "logs"))

    user_config = data.get("user", {})
    user_id = int(user_config.get("id", 1))

    category_config = data.get("categories", {})
    max_depth = int(category_config.get("max_depth", DEFAULT_MAX_DEPTH))
    default_icon = category_config.get("default_icon", DEFAULT_ICON)
    default_color = category_config.get("default_color", DEFAULT_COLOR)
    indent_marker = category_config.get("indent_marker", DEFAULT_INDENT_MARKER)

    return Config(
        base_dir=base_dir,
        db_data_dir=db_data_dir,
        db_filename=db_filename,
        log_level=log_level,
        log_dir=log_dir,
        user_id=user_id,
        max_depth=max_depth,
        default_icon=default_icon,
        default_color=default_color,
        indent_marker=indent_marker,
    )


def _write_config(config: Config) -> None:
    """Write config to the config file.

    Args:
        config: Config object to write.
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "base_dir": str(config.base_dir),
        "database": {
            "data_dir": str(config.db_data_dir),
            "filename": config.db_filename,
        },
        "logging": {
            "level": config.log_level,
            "log_dir": str(config.log_dir),
        },
        "user": {
            "id": config.user_id,
        },
        "categories": {
            "max_depth": config.max_depth,
            "default_icon": config.default_icon,
            "default_color": config.default_color,
            "indent_marker": config.indent_marker,
        },
    }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
