# classhub/infra/servicebus_consumer.py
import asyncio
import json
import logging
import os
from datetime import datetime, timezone

from azure.servicebus import TransportType
from azure.servicebus.aio import ServiceBusClient

from classhub.infra.table_client import NotificationStore
from classhub.services.error_channel import ErrorChannel
from classhub.services.notification_handler import process_notification

LOGGER = logging.getLogger(__name__)

# ====== env ======
SB_CONN_STR = os.getenv("AZURE_SERVICE_BUS_CONNECTION_STRING")
SB_QUEUE = os.getenv("AZURE_SERVICE_BUS_QUEUE_NAME", "notifications-queue")

RECONNECT_DELAY = 5  # seconds

_status = {
    "startedAt": None,
    "lastMessageAt": None,
    "lastError": None,
}


def consumer_status() -> dict:
    return {
        **_status,
        "queue": SB_QUEUE,
        "hasConnectionString": bool(SB_CONN_STR),
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def decode_body(msg) -> dict:
    # the body arrives as a generator of byte chunks
    body_bytes = b"".join(part for part in msg.body)
    return json.loads(body_bytes.decode("utf-8"))


async def consume_notifications(store: NotificationStore, channel: ErrorChannel):
    """
    Async Azure Service Bus consumer:
      - AMQP over WebSocket (443) so it works on App Service.
      - Reads queue messages and hands them to process_notification.
      - Completes a message only when it was processed.
      - Reconnects after a delay if the connection drops.
    """
    if not SB_CONN_STR:
        LOGGER.warning("AZURE_SERVICE_BUS_CONNECTION_STRING is not set, not consuming the queue")
        return

    if not SB_QUEUE:
        LOGGER.warning("AZURE_SERVICE_BUS_QUEUE_NAME is not set, not consuming the queue")
        return

    _status["startedAt"] = _now()

    while True:
        try:
            LOGGER.info("Connecting to Service Bus (queue: %s) over WebSockets 443", SB_QUEUE)
            async with ServiceBusClient.from_connection_string(
                SB_CONN_STR,
                transport_type=TransportType.AmqpOverWebsocket,
            ) as sb_client:
                receiver = sb_client.get_queue_receiver(
                    queue_name=SB_QUEUE,
                    max_wait_time=20,
                )
                async with receiver:
                    LOGGER.info("Listening on queue %s", SB_QUEUE)
                    while True:
                        messages = await receiver.receive_messages(
                            max_message_count=10,
                            max_wait_time=10,
                        )
                        if not messages:
                            await asyncio.sleep(0.5)
                            continue

                        for msg in messages:
                            try:
                                payload = decode_body(msg)
                                LOGGER.debug("Message received: %s", payload)
                                await process_notification(payload, store, channel)
                                await receiver.complete_message(msg)
                                _status["lastMessageAt"] = _now()
                            except Exception as exc:
                                # not completed: redelivered, or dead-lettered after MaxDeliveryCount
                                _status["lastError"] = str(exc)
                                LOGGER.error("Error processing message: %s", exc)

            await asyncio.sleep(1)

        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _status["lastError"] = str(exc)
            LOGGER.warning("Service Bus connection error, retrying in %ss: %s", RECONNECT_DELAY, exc)
            await asyncio.sleep(RECONNECT_DELAY)
