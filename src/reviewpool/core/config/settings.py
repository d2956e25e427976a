"""Configuration management for Reviewpool."""
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReviewpoolConfig(BaseSettings):
    """Main configuration for the reviewer assignment engine.

    Configuration can be loaded from:
    1. Environment variables (prefixed with REVIEWPOOL_)
    2. YAML configuration file (reviewpool.yaml)
    3. Default values
    """

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host address")
    api_port: int = Field(default=8000, description="API port")
    cron_secret: Optional[str] = Field(
        default=None, description="Bearer secret required by the cron endpoint"
    )

    # Database Configuration
    storage: str = Field(default="sqlite", description="Storage backend (sqlite or postgresql)")
    db_path: str = Field(default="./reviewpool.db", description="Database file path for SQLite")
    db_url: Optional[str] = Field(default=None, description="Database URL for PostgreSQL")

    # Reviewer Pool Configuration
    reviewer_roles: list[str] = Field(
        default=["REVIEWER", "ADMIN"], description="Roles allowed to review"
    )
    xp_floor_exempt_roles: list[str] = Field(
        default=["ADMIN"], description="Roles that skip the minimum XP requirement"
    )
    max_active_assignments: int = Field(
        default=5, ge=1, description="Maximum PENDING/IN_PROGRESS assignments per reviewer"
    )
    minimum_reviewers: int = Field(default=3, ge=1, description="Reviewers per submission")
    allow_partial_assignment: bool = Field(
        default=False, description="Assign fewer reviewers than required instead of failing"
    )
    min_reviewer_xp: int = Field(default=50, ge=0, description="Experience floor for reviewers")

    # Deadline Configuration
    review_window_hours: float = Field(
        default=48.0, gt=0, description="Time a reviewer gets before the deadline"
    )
    reminder_intervals_hours: list[float] = Field(
        default=[24.0, 6.0, 1.0], description="Reminder checkpoints before the deadline"
    )
    reminder_tolerance_hours: float = Field(
        default=0.5, gt=0, description="Half-width of the window around each checkpoint"
    )
    sweep_interval_hours: float = Field(
        default=0.5, gt=0, description="How often the scheduler runs the deadline sweep"
    )
    reassignment_delay_hours: float = Field(
        default=24.0, ge=0, description="Hours past the deadline before a missed review is reassigned"
    )
    urgent_threshold_hours: float = Field(
        default=6.0, gt=0, description="Open assignments due within this many hours are urgent"
    )
    missed_review_penalty_xp: int = Field(
        default=-10, le=0, description="Flat XP delta for every missed review"
    )

    # Retry Configuration
    retry_max_retries: int = Field(default=3, ge=0, description="Retries for transient storage errors")
    retry_initial_delay: float = Field(
        default=0.25, ge=0, description="Backoff base delay in seconds"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")

    model_config = SettingsConfigDict(
        env_prefix="REVIEWPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("reminder_intervals_hours")
    @classmethod
    def _sort_reminder_intervals(cls, value: list[float]) -> list[float]:
        if any(interval <= 0 for interval in value):
            raise ValueError("Reminder intervals must be positive")
        return sorted(set(value), reverse=True)

    @model_validator(mode="after")
    def _check_sweep_covers_reminders(self) -> "ReviewpoolConfig":
        # A sweep slower than the reminder window can step over a checkpoint
        if self.sweep_interval_hours >= 2 * self.reminder_tolerance_hours:
            raise ValueError(
                f"sweep_interval_hours ({self.sweep_interval_hours}) must be less than "
                f"2 x reminder_tolerance_hours ({self.reminder_tolerance_hours}) "
                "or reminders can be skipped"
            )
        return self

    def get_database_url(self) -> str:
        """Get the database URL based on configuration.

        Returns:
            Database URL string
        """
        if self.db_url:
            return self.db_url

        if self.storage == "sqlite":
            if self.db_path == ":memory:":
                return "sqlite+aiosqlite:///:memory:"
            # Ensure path is absolute
            db_path = Path(self.db_path)
            if not db_path.is_absolute():
                db_path = Path.cwd() / db_path
            return f"sqlite+aiosqlite:///{db_path}"
        elif self.storage == "postgresql":
            raise ValueError(
                "PostgreSQL selected but db_url not provided. "
                "Set REVIEWPOOL_DB_URL or db_url in config file."
            )
        else:
            raise ValueError(f"Unknown storage backend: {self.storage}")

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "ReviewpoolConfig":
        """Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            ReviewpoolConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Invalid configuration file: {config_path}")

        return cls(**data)

    def to_yaml(self, config_path: str | Path) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)

        # Convert to dict and remove None values
        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    @classmethod
    def create_default_config(cls, config_path: str | Path) -> "ReviewpoolConfig":
        """Create a default configuration file.

        Args:
            config_path: Path to save configuration file

        Returns:
            ReviewpoolConfig instance with default values
        """
        config = cls()
        config.to_yaml(config_path)
        return config


# Default configuration used by the CLI and the API entry points
_config: Optional[ReviewpoolConfig] = None


def init_config(config_path: Optional[str | Path] = None) -> ReviewpoolConfig:
    """Initialize the default configuration.

    Args:
        config_path: Optional path to YAML configuration file.
                    If not provided, uses environment variables and defaults.

    Returns:
        ReviewpoolConfig instance
    """
    global _config

    if config_path:
        _config = ReviewpoolConfig.from_yaml(config_path)
    else:
        # Try to load from default location
        default_paths = [
            Path("reviewpool.yaml"),
            Path("reviewpool.yml"),
            Path(".reviewpool.yaml"),
            Path.home() / ".reviewpool" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                _config = ReviewpoolConfig.from_yaml(path)
                return _config

        # No config file found, use defaults and env vars
        _config = ReviewpoolConfig()

    return _config


def get_config() -> ReviewpoolConfig:
    """Get the default configuration instance, initializing it on first use."""
    if _config is None:
        return init_config()
    return _config
