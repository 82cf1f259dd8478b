"""
SQLVector Assistant Configuration
=================================

Configuration management with support for:
- Environment variables (SQLVECTOR_*), including a local .env file
- YAML/JSON config files
- Programmatic overrides

The resolved AssistantConfig is built once at startup and handed to every
component that needs it.
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, Union, Literal
from pydantic import BaseModel, Field
from dotenv import load_dotenv
import yaml

from .exceptions import ConfigurationMissingError
from .models import EmbeddingSource


ENV_PREFIX = "SQLVECTOR"
DEFAULT_SQL_PORT = 1433

CONFIG_HINT = (
    "Set SQLVECTOR_CONNECTION_STRING (for example in a .env file) to "
    "'Server=<host>,1433;Database=AdventureWorks;User Id=<user>;Password=<password>;' "
    "or add 'connection_string' to ~/.sqlvector-assistant/config.yaml."
)


class SQLConnectionSettings(BaseModel):
    """Keyword arguments for pymssql.connect()."""
    server: str
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    port: int = DEFAULT_SQL_PORT

    def to_connect_kwargs(self) -> Dict[str, Any]:
        kwargs = {"server": self.server, "port": str(self.port)}
        if self.database:
            kwargs["database"] = self.database
        if self.user:
            kwargs["user"] = self.user
        if self.password is not None:
            kwargs["password"] = self.password
        return kwargs


# ADO.NET keyword aliases -> SQLConnectionSettings field
_CONNECTION_STRING_KEYS = {
    "server": "server",
    "data source": "server",
    "address": "server",
    "addr": "server",
    "network address": "server",
    "database": "database",
    "initial catalog": "database",
    "user id": "user",
    "uid": "user",
    "user": "user",
    "password": "password",
    "pwd": "password",
}


def parse_connection_string(connection_string: str) -> SQLConnectionSettings:
    """
    Parse an ADO.NET style SQL Server connection string.

    Example:
        parse_connection_string(
            "Server=tcp:sql01,1433;Database=AdventureWorks;User Id=sa;Password=secret;"
        )

    Unknown keywords (Encrypt, TrustServerCertificate, ...) are ignored.
    """
    values: Dict[str, str] = {}
    for part in connection_string.split(";"):
        if not part.strip() or "=" not in part:
            continue
        key, value = part.split("=", 1)
        field = _CONNECTION_STRING_KEYS.get(key.strip().lower())
        if field:
            values[field] = value.strip()

    server = values.get("server")
    if not server:
        raise ConfigurationMissingError(["connection_string.Server"], CONFIG_HINT)

    if server.lower().startswith("tcp:"):
        server = server[4:]

    port = DEFAULT_SQL_PORT
    if "," in server:
        server, port_text = server.split(",", 1)
        try:
            port = int(port_text.strip())
        except ValueError:
            raise ValueError(f"Invalid port {port_text.strip()!r} in connection string server") from None

    return SQLConnectionSettings(
        server=server.strip(),
        database=values.get("database"),
        user=values.get("user"),
        password=values.get("password"),
        port=port,
    )


class AssistantConfig(BaseModel):
    """
    Complete configuration for the assistant.

    Configuration is loaded from (in order of precedence):
    1. Programmatic values passed to load_config()
    2. Environment variables (SQLVECTOR_*)
    3. Config file (~/.sqlvector-assistant/config.yaml or specified path)
    4. Default values
    """

    # SQL Server
    connection_string: Optional[str] = Field(default=None, description="ADO.NET style connection string")
    sql_server: Optional[str] = Field(default=None, description="Used when no connection string is set")
    sql_port: int = Field(default=DEFAULT_SQL_PORT, ge=1, le=65535)
    sql_database: Optional[str] = None
    sql_user: Optional[str] = None
    sql_password: Optional[str] = None
    sql_login_timeout: int = Field(default=15, ge=1)
    sql_query_timeout: int = Field(default=30, ge=1)

    # Retrieval
    top_k: int = Field(default=5, ge=1, le=100)
    category_filter: str = "Bikes"
    culture_id: str = "en"
    embedding_source: EmbeddingSource = EmbeddingSource.DATABASE
    embedding_dimensions: int = Field(default=768, ge=1)
    embedding_model_name: str = Field(default="ollama", description="SQL Server EXTERNAL MODEL name")
    similarity_order: Literal["asc", "desc"] = "asc"

    # Generation service
    llm_backend: str = Field(default="ollama", description="LLM backend name")
    llm_base_url: Optional[str] = Field(default="http://localhost:11434", description="Base URL for LLM API")
    llm_model: str = Field(default="llama3", description="Generation model name")
    llm_embedding_model: str = Field(default="nomic-embed-text", description="Embedding model name")
    llm_timeout: int = Field(default=120, ge=1)
    llm_connect_timeout: int = Field(default=10, ge=1)

    # Console
    assistant_persona: str = "the AdventureWorks bicycle company"
    exit_keyword: str = "exit"

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None

    @property
    def sql_settings(self) -> SQLConnectionSettings:
        """Get pymssql connection settings, from the connection string when present."""
        if self.connection_string:
            return parse_connection_string(self.connection_string)
        if not self.sql_server:
            raise ConfigurationMissingError(["connection_string"], CONFIG_HINT)
        return SQLConnectionSettings(
            server=self.sql_server,
            database=self.sql_database,
            user=self.sql_user,
            password=self.sql_password,
            port=self.sql_port,
        )

    def validate_required(self) -> "AssistantConfig":
        """
        Check that everything the loop needs has been supplied.

        Raises:
            ConfigurationMissingError: listing every missing setting
        """
        missing = []
        if not (self.connection_string and self.connection_string.strip()) and not self.sql_server:
            missing.append("connection_string")
        if not (self.llm_base_url and self.llm_base_url.strip()):
            missing.append("llm_base_url")
        if not self.llm_model.strip():
            missing.append("llm_model")
        if missing:
            raise ConfigurationMissingError(missing, CONFIG_HINT)

        # Surface malformed connection strings at startup too
        _ = self.sql_settings
        return self

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> "AssistantConfig":
        """
        Load configuration from environment variables.

        Every field maps to <PREFIX>_<FIELD NAME IN UPPER CASE>.
        Example: SQLVECTOR_LLM_MODEL=llama3.1
        """
        values = {}
        for field in cls.model_fields:
            env_value = os.environ.get(f"{prefix}_{field.upper()}")
            if env_value is not None:
                values[field] = env_value
        return cls(**values)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AssistantConfig":
        """
        Load configuration from a YAML or JSON file.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            elif path.suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

        return cls(**data)

    def to_file(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML or JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", exclude_none=True)

        with open(path, "w") as f:
            if path.suffix in (".yaml", ".yml"):
                yaml.safe_dump(data, f, default_flow_style=False)
            else:
                json.dump(data, f, indent=2)


def get_default_config_path() -> Path:
    """Get the default configuration directory path."""
    return Path.home() / ".sqlvector-assistant"


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    env_prefix: str = ENV_PREFIX,
    env_file: Optional[Union[str, Path]] = None,
    **overrides
) -> AssistantConfig:
    """
    Load assistant configuration with the following precedence:
    1. Keyword argument overrides
    2. Environment variables (a .env file is loaded first, without
       replacing variables that are already set)
    3. Config file
    4. Defaults

    Args:
        config_path: Path to config file (optional)
        env_prefix: Prefix for environment variables
        env_file: Path to a .env file (defaults to ./.env)
        **overrides: Direct configuration overrides; None values are ignored

    Returns:
        AssistantConfig instance
    """
    load_dotenv(env_file or Path.cwd() / ".env", override=False)

    config_data: Dict[str, Any] = {}

    if config_path:
        path = Path(config_path).expanduser()
        file_config = AssistantConfig.from_file(path)
        config_data.update(file_config.model_dump(exclude_unset=True))
    else:
        default_paths = [
            get_default_config_path() / "config.yaml",
            get_default_config_path() / "config.json",
            Path.cwd() / ".sqlvector-assistant.yaml",
            Path.cwd() / ".sqlvector-assistant.json",
        ]
        for default_path in default_paths:
            if default_path.exists():
                file_config = AssistantConfig.from_file(default_path)
                config_data.update(file_config.model_dump(exclude_unset=True))
                break

    env_config = AssistantConfig.from_env(env_prefix)
    config_data.update(env_config.model_dump(exclude_unset=True))

    config_data.update({k: v for k, v in overrides.items() if v is not None})

    return AssistantConfig(**config_data)
