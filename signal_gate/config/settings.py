"""Configuration management with environment-specific settings"""

import logging
import os
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
import yaml
import json
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "change-me-in-production"


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class DatabaseConfig:
    """Relational store configuration"""
    url: str = "sqlite+aiosqlite:///./signal_gate.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20
    create_tables: bool = True


@dataclass
class RedisConfig:
    """Redis configuration (one-time code store for multi-instance deployments)"""
    enabled: bool = False
    url: str = "redis://localhost:6379/0"
    key_prefix: str = "signal_gate:otp:"
    socket_timeout: float = 5.0


@dataclass
class EmailConfig:
    """Outbound email provider configuration"""
    api_key: str = ""
    api_url: str = "https://api.resend.com/emails"
    from_address: str = "onboarding@resend.dev"
    timeout: float = 10.0  # seconds


@dataclass
class ChatConfig:
    """LLM assistant configuration"""
    api_key: str = ""
    api_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    model: str = "gemini-2.0-flash"
    persona: str = "You are the Shadow Howl AI Coach."
    disclaimer: str = "This is not financial advice. Trade at your own risk."
    timeout: float = 30.0  # seconds
    max_prompt_length: int = 4000


@dataclass
class OTPConfig:
    """One-time code configuration"""
    ttl_seconds: int = 600
    max_attempts: int = 3
    code_length: int = 6


@dataclass
class SignalConfig:
    """Signal store configuration"""
    list_limit: int = 1000
    default_notes: str = "This is not financial advice. Trade at your own risk."


@dataclass
class BootstrapConfig:
    """First administrator created at startup when absent"""
    admin_email: Optional[str] = None
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class MonitoringConfig:
    """Monitoring and metrics configuration"""
    enabled: bool = True
    histogram_window: int = 1000


@dataclass
class APIConfig:
    """API server configuration"""
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    cors_origins: list = field(default_factory=lambda: ["*"])
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24


@dataclass
class Settings:
    """Main application settings"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True

    # Component configurations
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    otp: OTPConfig = field(default_factory=OTPConfig)
    signals: SignalConfig = field(default_factory=SignalConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def from_env(cls) -> 'Settings':
        """Create settings from environment variables"""
        env_name = os.getenv("ENVIRONMENT", "development")
        environment = Environment(env_name)

        settings = cls(environment=environment)

        # Override with environment variables
        if os.getenv("DEBUG"):
            settings.debug = os.getenv("DEBUG").lower() == "true"
        if os.getenv("LOG_LEVEL"):
            settings.logging.level = os.getenv("LOG_LEVEL")

        # Database settings
        if os.getenv("DATABASE_URL"):
            url = os.getenv("DATABASE_URL")
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+asyncpg://", 1)
            settings.database.url = url

        # Redis settings
        if os.getenv("REDIS_URL"):
            settings.redis.url = os.getenv("REDIS_URL")
            settings.redis.enabled = True

        # API settings
        if os.getenv("API_HOST"):
            settings.api.host = os.getenv("API_HOST")
        if os.getenv("API_PORT"):
            settings.api.port = int(os.getenv("API_PORT"))
        if os.getenv("CORS_ORIGINS"):
            settings.api.cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS").split(",")]
        if os.getenv("JWT_SECRET"):
            settings.api.jwt_secret = os.getenv("JWT_SECRET")
        if os.getenv("JWT_EXPIRY_HOURS"):
            settings.api.jwt_expiry_hours = int(os.getenv("JWT_EXPIRY_HOURS"))

        # Email provider
        if os.getenv("RESEND_API_KEY"):
            settings.email.api_key = os.getenv("RESEND_API_KEY")
        if os.getenv("EMAIL_FROM"):
            settings.email.from_address = os.getenv("EMAIL_FROM")

        # Chat assistant
        if os.getenv("GEMINI_API_KEY"):
            settings.chat.api_key = os.getenv("GEMINI_API_KEY")
        if os.getenv("GEMINI_MODEL"):
            settings.chat.model = os.getenv("GEMINI_MODEL")

        # First administrator
        settings.bootstrap.admin_email = os.getenv("BOOTSTRAP_ADMIN_EMAIL")
        settings.bootstrap.admin_username = os.getenv("BOOTSTRAP_ADMIN_USERNAME")
        settings.bootstrap.admin_password = os.getenv("BOOTSTRAP_ADMIN_PASSWORD")

        return settings

    @classmethod
    def from_file(cls, config_path: str) -> 'Settings':
        """Load settings from configuration file"""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r') as f:
            if config_file.suffix.lower() == '.yaml' or config_file.suffix.lower() == '.yml':
                config_data = yaml.safe_load(f)
            elif config_file.suffix.lower() == '.json':
                config_data = json.load(f)
            else:
                raise ValueError(f"Unsupported configuration file format: {config_file.suffix}")

        return cls._from_dict(config_data or {})

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        """Create Settings from dictionary"""
        settings = cls()

        if 'environment' in data:
            settings.environment = Environment(data['environment'])

        if 'debug' in data:
            settings.debug = data['debug']

        # Update nested configurations, ignoring unknown keys
        for section in fields(settings):
            current = getattr(settings, section.name)
            if section.name not in data or not is_dataclass(current):
                continue
            for key, value in (data[section.name] or {}).items():
                if hasattr(current, key):
                    setattr(current, key, value)

        return settings

    def validate(self) -> List[str]:
        """
        Check settings before serving.

        Returns the non-fatal issues, which are also logged.

        Raises:
            ValueError: the settings are unsafe or unusable.
        """
        if not 1 <= self.api.port <= 65535:
            raise ValueError(f"Invalid API port: {self.api.port}")
        if self.api.jwt_expiry_hours <= 0:
            raise ValueError(f"JWT expiry must be positive: {self.api.jwt_expiry_hours}")
        if self.otp.max_attempts <= 0 or self.otp.ttl_seconds <= 0:
            raise ValueError("OTP ttl and attempts must be positive")

        issues = []
        default_secret = not self.api.jwt_secret or self.api.jwt_secret == DEFAULT_JWT_SECRET

        # Production-specific validations
        if self.environment == Environment.PRODUCTION:
            if default_secret:
                raise ValueError("Must set JWT secret in production")
            if self.api.debug:
                issues.append("Debug mode should be disabled in production")
            if "*" in self.api.cors_origins:
                issues.append("CORS origins should be restricted in production")
        elif default_secret:
            issues.append("Using default JWT secret outside production")

        for issue in issues:
            logger.warning(issue)
        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary (secrets omitted)"""
        return {
            'environment': self.environment.value,
            'debug': self.debug,
            'database': {
                'url': self.database.url.split('@')[-1],
                'pool_size': self.database.pool_size,
                'max_overflow': self.database.max_overflow
            },
            'redis': {
                'enabled': self.redis.enabled,
                'key_prefix': self.redis.key_prefix
            },
            'email': {
                'configured': bool(self.email.api_key),
                'from_address': self.email.from_address,
                'timeout': self.email.timeout
            },
            'chat': {
                'configured': bool(self.chat.api_key),
                'model': self.chat.model,
                'timeout': self.chat.timeout
            },
            'otp': {
                'ttl_seconds': self.otp.ttl_seconds,
                'max_attempts': self.otp.max_attempts,
                'code_length': self.otp.code_length
            },
            'signals': {
                'list_limit': self.signals.list_limit
            },
            'api': {
                'host': self.api.host,
                'port': self.api.port,
                'debug': self.api.debug,
                'cors_origins': self.api.cors_origins,
                'jwt_expiry_hours': self.api.jwt_expiry_hours
            }
        }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance"""
    global _settings

    if _settings is None:
        # Try to load from file first, then fall back to environment
        config_file = os.getenv("CONFIG_FILE", "config/settings.yaml")

        if os.path.exists(config_file):
            _settings = Settings.from_file(config_file)
        else:
            _settings = Settings.from_env()

    return _settings


def set_settings(settings: Settings) -> None:
    """Set global settings instance"""
    global _settings
    _settings = settings
