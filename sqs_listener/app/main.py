import asyncio
import signal
import sys
from typing import Any

from loguru import logger

from sqs_listener.app.composition import create_listener_client
from sqs_listener.app.config.settings import Settings
from sqs_listener.app.core import SERVICE_NAME
from sqs_listener.app.domain.errors import ConfigurationError
from sqs_listener.app.domain.models import Message


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper(), serialize=settings.log_json)


async def log_message(message: Message) -> None:
    _log(
        "message_received",
        message_id=message.message_id,
        receive_count=message.receive_count,
        body=message.body,
    )


async def run_listener(settings: Settings | None = None) -> int:
    settings = settings or Settings()
    client = create_listener_client(log_message, settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, client.stop)
        except NotImplementedError:
            pass

    _log("listener_started", queue_name=settings.queue_name)
    await client.start()
    failures = await client.join()
    await client.close()
    for failure in failures:
        logger.error("listener for {!r} failed: {}", failure.queue_name, failure.error)
    _log("listener_stopped", failures=len(failures))
    return 1 if failures else 0


def main() -> None:
    try:
        settings = Settings()
    except Exception as e:
        logger.error("invalid settings: {}", e)
        sys.exit(2)
    configure_logging(settings)
    try:
        sys.exit(asyncio.run(run_listener(settings)))
    except ConfigurationError as e:
        logger.error("configuration error: {}", e)
        sys.exit(2)
    except KeyboardInterrupt:
        _log("listener_interrupted")
    except Exception as e:
        logger.exception("listener failed: {}", e)
        raise


if __name__ == "__main__":
    main()
