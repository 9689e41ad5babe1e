"""Builder for ListenerClient: accumulate configuration, validate once in build()."""
from __future__ import annotations

import boto3
from botocore.config import Config as BotoConfig

from sqs_listener.app.application.listener_client import ListenerClient
from sqs_listener.app.config.settings import Settings
from sqs_listener.app.domain.errors import ConfigurationError
from sqs_listener.app.domain.listener import Listener
from sqs_listener.app.domain.models import PollConfig, StaticCredentials
from sqs_listener.app.infrastructure.inmemory.in_memory_queue_client import InMemoryQueueClient
from sqs_listener.app.infrastructure.sqs.boto3_queue_client import Boto3QueueClient
from sqs_listener.app.infrastructure.sqs.factory import create_sqs_client, resolve_region
from sqs_listener.app.ports.queue_client import QueueClient


class ListenerClientBuilder:
    """Chaining builder.

    ``ListenerClientBuilder("us-east-1")`` uses boto3's default credential chain;
    pass ``credentials``/``endpoint_url``/``boto_config``/``session`` to override the
    credentials or transport, or use :meth:`with_client` to inject a QueueClient.
    """

    def __init__(
        self,
        region: str | None = None,
        *,
        credentials: StaticCredentials | None = None,
        endpoint_url: str | None = None,
        boto_config: BotoConfig | None = None,
        session: boto3.session.Session | None = None,
    ) -> None:
        self._region = region
        self._credentials = credentials
        self._endpoint_url = endpoint_url or None
        self._boto_config = boto_config
        self._session = session
        self._queue_client: QueueClient | None = None
        self._owns_queue_client = False
        self._listeners: list[Listener] = []
        self._default_queue: str = ""
        self._config = PollConfig()
        self._built = False

    @classmethod
    def with_client(
        cls,
        queue_client: QueueClient,
        *,
        region: str | None = None,
        owns_client: bool = False,
    ) -> "ListenerClientBuilder":
        """Use an existing QueueClient; it is closed with the client only if ``owns_client``."""
        builder = cls(region)
        builder._queue_client = queue_client
        builder._owns_queue_client = owns_client
        return builder

    @classmethod
    def from_settings(cls, settings: Settings) -> "ListenerClientBuilder":
        """Builder preconfigured from Settings (backend, region, credentials, transport, polling)."""
        backend = settings.queue_client_backend.strip().lower()

        if backend == "sqs":
            builder = cls(
                settings.aws_region or None,
                credentials=settings.static_credentials(),
                endpoint_url=settings.sqs_endpoint_url or None,
                boto_config=settings.boto_config(),
            )
        elif backend == "inmemory":
            in_memory = InMemoryQueueClient()
            if settings.queue_name:
                in_memory.create_queue(settings.queue_name)
            builder = cls.with_client(in_memory, region=settings.aws_region or None, owns_client=True)
        else:
            raise ConfigurationError(
                f"Unsupported queue client backend: {backend}", key="QUEUE_CLIENT_BACKEND"
            )
        return builder.default_queue(settings.queue_name).config(settings.poll_config())

    def listener(self, listener: Listener) -> "ListenerClientBuilder":
        """Register a listener. Order is kept and is the order loops are started in."""
        if not isinstance(listener, Listener):
            raise ConfigurationError(
                f"expected a Listener, got {type(listener).__name__}", key="listener"
            )
        self._listeners.append(listener)
        return self

    def default_queue(self, queue_name: str) -> "ListenerClientBuilder":
        """Queue used by listeners registered with an empty queue name."""
        self._default_queue = (queue_name or "").strip()
        return self

    def config(self, config: PollConfig) -> "ListenerClientBuilder":
        if not isinstance(config, PollConfig):
            raise ConfigurationError(f"expected a PollConfig, got {type(config).__name__}", key="config")
        self._config = config
        return self

    def build(self) -> ListenerClient:
        """Validate and return a ListenerClient. Raises ConfigurationError."""
        if self._built:
            raise ConfigurationError("builder has already been used", key="builder")
        if not self._listeners:
            raise ConfigurationError("at least one listener must be registered", key="listeners")
        if self._credentials is not None and not isinstance(self._credentials, StaticCredentials):
            raise ConfigurationError("credentials must be StaticCredentials", key="credentials")

        listeners = [self._with_queue(listener) for listener in self._listeners]

        owns_client = self._owns_queue_client
        queue_client = self._queue_client
        if queue_client is None:
            region = resolve_region(self._region, session=self._session, endpoint_url=self._endpoint_url)
            queue_client = Boto3QueueClient(
                create_sqs_client(
                    region,
                    credentials=self._credentials,
                    endpoint_url=self._endpoint_url,
                    boto_config=self._boto_config,
                    session=self._session,
                )
            )
            owns_client = True

        self._built = True
        return ListenerClient(queue_client, listeners, self._config, owns_queue_client=owns_client)

    def _with_queue(self, listener: Listener) -> Listener:
        if listener.queue_name:
            return listener
        if not self._default_queue:
            raise ConfigurationError(
                "listener has an empty queue name and no default queue is configured",
                key="queue_name",
            )
        return listener.with_queue_name(self._default_queue)
