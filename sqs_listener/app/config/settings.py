from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from botocore.config import Config as BotoConfig

from sqs_listener.app.domain.errors import ConfigurationError
from sqs_listener.app.domain.models import PollConfig, StaticCredentials
from sqs_listener.app.infrastructure.sqs.factory import default_boto_config


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    queue_client_backend: str = Field("sqs", validation_alias="QUEUE_CLIENT_BACKEND")

    # Empty values defer to boto3's default resolution (env, shared config, instance role).
    aws_region: str = Field("", validation_alias="AWS_REGION")
    aws_access_key_id: str = Field("", validation_alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field("", validation_alias="AWS_SECRET_ACCESS_KEY")
    aws_session_token: str = Field("", validation_alias="AWS_SESSION_TOKEN")
    sqs_endpoint_url: str = Field("", validation_alias="SQS_ENDPOINT_URL")

    queue_name: str = Field(..., validation_alias="QUEUE_NAME")

    max_messages: int = Field(10, validation_alias="MAX_MESSAGES")
    wait_time_seconds: int = Field(20, validation_alias="WAIT_TIME_SECONDS")
    visibility_timeout: int | None = Field(None, validation_alias="VISIBILITY_TIMEOUT")
    idle_delay_seconds: float = Field(0.0, validation_alias="IDLE_DELAY_SECONDS")
    auto_ack: bool = Field(True, validation_alias="AUTO_ACK")
    max_concurrency: int = Field(1, validation_alias="MAX_CONCURRENCY")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    resolve_attempts: int = Field(3, validation_alias="RESOLVE_ATTEMPTS")

    # read timeout must outlast WAIT_TIME_SECONDS or long polls time out client-side.
    connect_timeout_seconds: float = Field(10.0, validation_alias="CONNECT_TIMEOUT_SECONDS")
    read_timeout_seconds: float = Field(30.0, validation_alias="READ_TIMEOUT_SECONDS")
    max_transport_attempts: int = Field(3, validation_alias="MAX_TRANSPORT_ATTEMPTS")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(False, validation_alias="LOG_JSON")

    def static_credentials(self) -> StaticCredentials | None:
        if not self.aws_access_key_id and not self.aws_secret_access_key:
            return None
        if not self.aws_access_key_id or not self.aws_secret_access_key:
            raise ConfigurationError(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together",
                key="AWS_ACCESS_KEY_ID",
            )
        return StaticCredentials(
            access_key_id=self.aws_access_key_id,
            secret_access_key=self.aws_secret_access_key,
            session_token=self.aws_session_token or None,
        )

    def boto_config(self) -> BotoConfig:
        return default_boto_config(
            connect_timeout=self.connect_timeout_seconds,
            read_timeout=self.read_timeout_seconds,
            max_attempts=self.max_transport_attempts,
        )

    def poll_config(self) -> PollConfig:
        return PollConfig(
            max_messages=self.max_messages,
            wait_time_seconds=self.wait_time_seconds,
            visibility_timeout=self.visibility_timeout,
            idle_delay_seconds=self.idle_delay_seconds,
            auto_ack=self.auto_ack,
            max_concurrency=self.max_concurrency,
            error_backoff_initial_seconds=self.initial_backoff_seconds,
            error_backoff_max_seconds=self.max_backoff_seconds,
            error_backoff_multiplier=self.backoff_multiplier,
            resolve_attempts=self.resolve_attempts,
        )
