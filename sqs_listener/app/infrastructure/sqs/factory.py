"""SQS client factory: region resolution and boto3 client construction.

Only place that creates boto3 sessions/clients; failures surface as ConfigurationError
so the builder can fail fast before any network activity.
"""
from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError

from sqs_listener.app.domain.errors import ConfigurationError
from sqs_listener.app.domain.models import StaticCredentials


def default_boto_config(
    *,
    connect_timeout: float = 10.0,
    read_timeout: float = 30.0,
    max_attempts: int = 3,
) -> BotoConfig:
    """Transport defaults. read_timeout must outlast the long-poll wait."""
    return BotoConfig(
        retries={"max_attempts": max_attempts, "mode": "standard"},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
    )


def known_sqs_regions(session: boto3.session.Session) -> set[str]:
    regions: set[str] = set()
    for partition in session.get_available_partitions():
        regions.update(session.get_available_regions("sqs", partition_name=partition))
    return regions


def resolve_region(
    region: str | None,
    *,
    session: boto3.session.Session | None = None,
    endpoint_url: str | None = None,
) -> str:
    """Return the region to use, falling back to boto3's default resolution.

    Custom endpoints (LocalStack, ElasticMQ) accept any non-empty region name.
    """
    session = session or boto3.session.Session()
    resolved = (region or session.region_name or "").strip()
    if not resolved:
        raise ConfigurationError(
            "no AWS region configured; pass a region or set AWS_REGION",
            key="region",
        )
    if endpoint_url:
        return resolved
    if resolved not in known_sqs_regions(session):
        raise ConfigurationError(f"unknown SQS region: {resolved}", key="region")
    return resolved


def create_sqs_client(
    region: str,
    *,
    credentials: StaticCredentials | None = None,
    endpoint_url: str | None = None,
    boto_config: BotoConfig | None = None,
    session: boto3.session.Session | None = None,
) -> Any:
    """Build a boto3 SQS client; credentials default to boto3's provider chain."""
    session = session or boto3.session.Session()
    kwargs: dict[str, Any] = {
        "region_name": region,
        "config": boto_config or default_boto_config(),
    }
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    if credentials is not None:
        kwargs["aws_access_key_id"] = credentials.access_key_id
        kwargs["aws_secret_access_key"] = credentials.secret_access_key
        if credentials.session_token:
            kwargs["aws_session_token"] = credentials.session_token

    try:
        return session.client("sqs", **kwargs)
    except (BotoCoreError, ValueError) as exc:
        raise ConfigurationError(f"unable to construct SQS client: {exc}", key="transport") from exc
