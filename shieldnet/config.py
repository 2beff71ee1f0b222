"""
ShieldNet Configuration Module

Central configuration management with environment variable support.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from enum import Enum


class Environment(Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreBackend(Enum):
    """Which alert/pattern store implementation to build."""
    MEMORY = "memory"
    REDIS = "redis"


class TrendAlertPolicy(Enum):
    """
    When the pattern aggregator emits a synthetic trend alert.

    CROSSING: once, on the report that reaches the trend threshold
    EVERY: on every report at or above the threshold
    """
    CROSSING = "crossing"
    EVERY = "every"


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    ssl: bool = False
    key_prefix: str = "shieldnet"

    # Pool settings
    max_connections: int = 50
    socket_timeout: float = 5.0

    # Optimistic transaction retries (WATCH conflicts)
    transaction_retries: int = 10

    @property
    def url(self) -> str:
        """Build Redis URL."""
        protocol = "rediss" if self.ssl else "redis"
        auth = f":{self.password}@" if self.password else ""
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            db=int(os.getenv("REDIS_DB", "0")),
            password=os.getenv("REDIS_PASSWORD"),
            ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
            key_prefix=os.getenv("REDIS_KEY_PREFIX", "shieldnet"),
            max_connections=int(os.getenv("REDIS_MAX_CONNECTIONS", "50")),
        )


@dataclass
class StoreConfig:
    """Alert/pattern store selection."""
    backend: StoreBackend = StoreBackend.MEMORY

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Load configuration from environment variables."""
        raw = os.getenv("SHIELDNET_STORE_BACKEND", "memory").lower()
        try:
            backend = StoreBackend(raw)
        except ValueError:
            backend = StoreBackend.MEMORY
        return cls(backend=backend)


@dataclass
class CommunityConfig:
    """Community intelligence configuration."""
    # Geospatial
    proximity_radius_km: float = 10.0
    area_radius_km: float = 5.0

    # Time windows
    area_window_days: int = 7
    alert_ttl_hours: int = 24

    # Thresholds
    verification_threshold: int = 3
    trend_threshold: int = 3
    trend_alert_policy: TrendAlertPolicy = TrendAlertPolicy.CROSSING

    # Query limits
    active_alert_limit: int = 50
    trending_limit: int = 10

    @classmethod
    def from_env(cls) -> "CommunityConfig":
        """Load configuration from environment variables."""
        raw_policy = os.getenv("SHIELDNET_TREND_ALERT_POLICY", "crossing").lower()
        try:
            policy = TrendAlertPolicy(raw_policy)
        except ValueError:
            policy = TrendAlertPolicy.CROSSING
        return cls(
            proximity_radius_km=float(os.getenv("SHIELDNET_PROXIMITY_RADIUS_KM", "10")),
            area_radius_km=float(os.getenv("SHIELDNET_AREA_RADIUS_KM", "5")),
            area_window_days=int(os.getenv("SHIELDNET_AREA_WINDOW_DAYS", "7")),
            alert_ttl_hours=int(os.getenv("SHIELDNET_ALERT_TTL_HOURS", "24")),
            trend_threshold=int(os.getenv("SHIELDNET_TREND_THRESHOLD", "3")),
            trend_alert_policy=policy,
            active_alert_limit=int(os.getenv("SHIELDNET_ACTIVE_ALERT_LIMIT", "50")),
        )


@dataclass
class PredictionConfig:
    """Classifier and prediction threshold configuration."""
    # Model files (TorchScript); absent models disable the matching predictor
    threat_model_path: Optional[str] = None
    scam_model_path: Optional[str] = None
    behavioral_model_path: Optional[str] = None

    # Model input/output dimensions
    threat_input_size: int = 50
    scam_input_size: int = 100
    behavioral_input_size: int = 30
    behavioral_output_size: int = 5

    # Prediction thresholds
    threat_probability_threshold: float = 0.10
    scam_probability_threshold: float = 0.30
    high_risk_threshold: float = 0.75
    anomaly_threshold: float = 0.8

    @classmethod
    def from_env(cls) -> "PredictionConfig":
        """Load configuration from environment variables."""
        return cls(
            threat_model_path=os.getenv("SHIELDNET_THREAT_MODEL_PATH"),
            scam_model_path=os.getenv("SHIELDNET_SCAM_MODEL_PATH"),
            behavioral_model_path=os.getenv("SHIELDNET_BEHAVIORAL_MODEL_PATH"),
            threat_probability_threshold=float(
                os.getenv("SHIELDNET_THREAT_THRESHOLD", "0.10")
            ),
            scam_probability_threshold=float(os.getenv("SHIELDNET_SCAM_THRESHOLD", "0.30")),
            high_risk_threshold=float(os.getenv("SHIELDNET_HIGH_RISK_THRESHOLD", "0.75")),
            anomaly_threshold=float(os.getenv("SHIELDNET_ANOMALY_THRESHOLD", "0.8")),
        )


@dataclass
class MonitorConfig:
    """Background threat monitor configuration."""
    interval_seconds: float = 300.0  # 5 minutes

    # Escalation webhook (logging only when unset)
    escalation_webhook_url: Optional[str] = None
    escalation_timeout_seconds: float = 5.0

    # Location watched by the community context provider
    watch_latitude: Optional[float] = None
    watch_longitude: Optional[float] = None

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        """Load configuration from environment variables."""
        lat = os.getenv("SHIELDNET_WATCH_LATITUDE")
        lon = os.getenv("SHIELDNET_WATCH_LONGITUDE")
        return cls(
            interval_seconds=float(os.getenv("SHIELDNET_MONITOR_INTERVAL_SECONDS", "300")),
            escalation_webhook_url=os.getenv("SHIELDNET_ESCALATION_WEBHOOK_URL"),
            escalation_timeout_seconds=float(
                os.getenv("SHIELDNET_ESCALATION_TIMEOUT_SECONDS", "5")
            ),
            watch_latitude=float(lat) if lat else None,
            watch_longitude=float(lon) if lon else None,
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Log destinations
    console: bool = True
    file_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load configuration from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
            format=os.getenv("LOG_FORMAT", cls.format),
            console=os.getenv("LOG_CONSOLE", "true").lower() == "true",
            file_path=os.getenv("LOG_FILE_PATH"),
        )

    def configure(self) -> None:
        """Install handlers on the `shieldnet` logger."""
        root = logging.getLogger("shieldnet")
        root.setLevel(self.level.upper())
        formatter = logging.Formatter(self.format)

        for handler in list(root.handlers):
            root.removeHandler(handler)

        if self.console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            root.addHandler(console_handler)

        if self.file_path:
            file_handler = logging.FileHandler(self.file_path)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)


@dataclass
class ShieldNetConfig:
    """Master configuration for ShieldNet."""
    environment: Environment = Environment.DEVELOPMENT

    # Sub-configurations
    redis: RedisConfig = field(default_factory=RedisConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    community: CommunityConfig = field(default_factory=CommunityConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "ShieldNetConfig":
        """Load all configuration from environment variables."""
        env_str = os.getenv("ENVIRONMENT", "development").lower()
        try:
            environment = Environment(env_str)
        except ValueError:
            environment = Environment.DEVELOPMENT

        return cls(
            environment=environment,
            redis=RedisConfig.from_env(),
            store=StoreConfig.from_env(),
            community=CommunityConfig.from_env(),
            prediction=PredictionConfig.from_env(),
            monitor=MonitorConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    def validate(self) -> Dict[str, Any]:
        """
        Validate configuration and return any warnings/errors.

        Returns:
            Dictionary with 'valid' boolean and 'messages' list
        """
        messages = []
        valid = True

        if self.community.trend_threshold < 1:
            messages.append("ERROR: Trend threshold must be at least 1")
            valid = False

        if self.monitor.interval_seconds <= 0:
            messages.append("ERROR: Monitor interval must be positive")
            valid = False

        # Production needs a shared store
        if self.environment == Environment.PRODUCTION:
            if self.store.backend == StoreBackend.MEMORY:
                messages.append("WARNING: In-memory store used in production")
            if self.store.backend == StoreBackend.REDIS and self.redis.host == "localhost":
                messages.append("WARNING: Using localhost Redis in production")
            if not self.prediction.threat_model_path:
                messages.append("WARNING: No threat model configured")

        return {"valid": valid, "messages": messages}


# Global configuration instance
_config: Optional[ShieldNetConfig] = None


def get_config() -> ShieldNetConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ShieldNetConfig.from_env()
    return _config


def set_config(config: ShieldNetConfig) -> None:
    """Set the global configuration instance (for testing)."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
