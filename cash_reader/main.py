"""
Cash Reader - Main entry point.

Subscribes to the Redis command channel, executes commands on the
CashReaderFacade and publishes responses on the response channel.
"""

import asyncio
import json
import os
from typing import Final

from redis.asyncio import Redis

from application.api_facade import CashReaderFacade
from application.command_handler import CommandHandler
from configs import LOG_DIR
from infrastructure.settings import get_settings
from loggers import get_logger, logger


# =============================================================================
# Constants
# =============================================================================

settings = get_settings()
COMMAND_CHANNEL: Final[str] = settings.control.command_channel
RESPONSE_CHANNEL: Final[str] = settings.control.response_channel


# =============================================================================
# Redis Command Listener
# =============================================================================


async def listen_to_redis(redis: Redis, handler: CommandHandler) -> None:
    """
    Listen for commands on Redis pub/sub and process them.

    Args:
        redis: Redis client instance.
        handler: Command handler bound to the facade.
    """
    pubsub = redis.pubsub()
    await pubsub.subscribe(COMMAND_CHANNEL)
    logger.info(f"Listening for commands on channel: {COMMAND_CHANNEL}")

    async for message in pubsub.listen():
        if message.get("type") != "message":
            continue

        raw_data = message.get("data")

        # Handle ping messages
        if raw_data == "ping":
            continue

        try:
            command = json.loads(raw_data)
            if not isinstance(command, dict):
                raise ValueError(f"Command must be a JSON object, got {type(command).__name__}")
            logger.info(f"Received command: {command}")

            response = await handler.execute(command)

            await redis.publish(RESPONSE_CHANNEL, json.dumps(response, default=str))
            logger.info(f"Response sent to {RESPONSE_CHANNEL}: {response}")

        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Command parsing error: {e}")
        except Exception as e:
            logger.error(f"Unexpected error processing command: {e}")


# =============================================================================
# Main Entry Point
# =============================================================================


async def main() -> None:
    """
    Main entry point for the cash reader service.

    Connects to Redis and serves commands until cancelled; any running
    session is stopped on the way out.
    """
    get_logger(
        name="devices",
        log_file=os.path.join(LOG_DIR, "nv200.log"),
        loki_url=settings.services.loki_url,
    )

    redis = Redis(
        host=settings.redis.host,
        port=settings.redis.port,
        decode_responses=settings.redis.decode_responses,
    )

    api = CashReaderFacade(settings=settings)
    api.notifier.start()
    handler = CommandHandler(api)

    try:
        await listen_to_redis(redis, handler)
    finally:
        await api.shutdown()
        await redis.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
