"""Database configuration and credentials management"""
from dataclasses import dataclass

from track_rating.config import Settings

@dataclass
class DatabaseCredentials:
    """Database credentials container with validation"""
    host: str
    port: str
    name: str
    user: str
    password: str
    ssl_mode: str = 'disable'

    def to_connection_string(self) -> str:
        """Generate database connection string with proper escaping"""
        return (
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/"
            f"{self.name}?sslmode={self.ssl_mode}"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> 'DatabaseCredentials':
        """Create credentials from settings"""
        if not settings.DB_HOST:
            raise ValueError("DB_HOST setting is required")
        if not settings.DB_PASSWORD:
            raise ValueError("DB_PASSWORD setting is required")
        return cls(
            host=settings.DB_HOST,
            port=settings.DB_PORT,
            name=settings.DB_NAME,
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            ssl_mode=settings.DB_SSL_MODE
        )

class DatabaseManager:
    """Resolves which database the service talks to"""

    @staticmethod
    def is_sqlite(connection_string: str) -> bool:
        return connection_string.startswith("sqlite")

    @classmethod
    def connection_string(cls, settings: Settings) -> str:
        """
        Resolve the database connection string

        Order of precedence:
        - DATABASE_URL as given
        - PostgreSQL composed from DB_HOST / DB_PASSWORD and friends
        - local SQLite file at SQLITE_PATH

        Returns:
            SQLAlchemy connection string
        """
        if settings.DATABASE_URL:
            return settings.DATABASE_URL
        if settings.DB_HOST:
            return DatabaseCredentials.from_settings(settings).to_connection_string()
        return f"sqlite:///{settings.SQLITE_PATH}"
