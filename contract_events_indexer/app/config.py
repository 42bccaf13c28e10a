"""Config file."""
from pathlib import Path
from urllib.parse import quote_plus

from eth_utils import is_address, to_checksum_address
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

START_FROM_HEAD = "latest"


class Settings(BaseSettings):
    """Application settings."""

    # CHAIN
    rpc_url: str = Field("https://0xrpc.io/base", alias="RPC_URL")
    contract_address: str = Field(
        "0x91Cf2D8Ed503EC52768999aA6D8DBeA6e52dbe43",
        alias="CONTRACT_ADDRESS",
    )
    abi_dir: Path = Field(Path("./abi"), alias="ABI_DIR")
    # None means "start from the chain head"
    start_block: int | None = Field(8443806, alias="START_BLOCK")
    finality_blocks: int = Field(10, ge=0, alias="FINALITY_BLOCK")

    # RETRIES / TIMING
    max_retries: int = Field(100, ge=1, alias="MAX_RETRIES")
    retry_delay_seconds: float = Field(5.0, ge=0, alias="RETRY_DELAY_SECONDS")
    reconnect_max_retries: int | None = Field(None, ge=1, alias="RECONNECT_MAX_RETRIES")
    max_block_range: int = Field(10_000, gt=0, alias="MAX_BLOCK_RANGE")
    connection_timeout_seconds: float = Field(30.0, gt=0, alias="CONNECTION_TIMEOUT_SECONDS")
    probe_timeout_seconds: float = Field(10.0, gt=0, alias="PROBE_TIMEOUT_SECONDS")
    polling_interval_seconds: float = Field(2.0, ge=0, alias="POLLING_INTERVAL_SECONDS")

    # DATABASE
    postgres_user: str = Field("postgres", alias="PG_USER")
    postgres_password: SecretStr = Field(SecretStr("postgres"), alias="PG_PASSWORD")
    postgres_server: str = Field("127.0.0.1", alias="PG_HOST")
    postgres_port: int = Field(15432, alias="PG_PORT")
    postgres_db: str = Field("postgres", alias="PG_DBNAME")
    database_url: str | None = Field(None, alias="DATABASE_URL")

    # REPORTING
    query_dir: Path = Field(Path("./queries"), alias="QUERY_DIR")

    verbose: bool = Field(False, alias="ENABLE_SQL_LOGS")

    @field_validator("start_block", mode="before")
    @classmethod
    def parse_start_block(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip().lower()
            if stripped == START_FROM_HEAD:
                return None
            if stripped == "":
                return 1
            value = int(stripped)
        if isinstance(value, int) and value < 1:
            return 1
        return value

    @field_validator("contract_address")
    @classmethod
    def checksum_contract_address(cls, value: str) -> str:
        if not is_address(value):
            raise ValueError(f"Invalid contract address: {value!r}")
        return to_checksum_address(value)

    @model_validator(mode="after")
    def assemble_db_url(self) -> "Settings":
        if not self.database_url:
            user = quote_plus(self.postgres_user)
            password = quote_plus(self.postgres_password.get_secret_value())
            host = self.postgres_server
            port = self.postgres_port
            db = self.postgres_db

            self.database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

        if self.reconnect_max_retries is None:
            self.reconnect_max_retries = self.max_retries

        return self

    @property
    def safe_database_url(self) -> str:
        """database_url with the password masked, for logging."""
        return make_url(self.database_url).render_as_string(hide_password=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )
