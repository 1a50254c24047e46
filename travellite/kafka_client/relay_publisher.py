"""
Realtime Relay Publisher
Publishes agent_response messages to a shared channel (room).

- KafkaRelayPublisher: kafka-python producer on REALTIME_TOPIC, keyed by room
- MemoryRelay: in-process channels for development and tests

Wire value per record:
    {"room": <channel id>, "message": {type, text, userId, timestamp, chunk?, complete?, streaming?, isError?}}
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError
from loguru import logger

from ..config import settings


class RelayPublisher(ABC):
    """Contract for the publish capability"""

    @property
    @abstractmethod
    def available(self) -> bool:
        """False when publishing cannot succeed (not started, disabled)"""

    @abstractmethod
    async def publish(self, channel_id: str, message: Dict[str, Any]) -> bool:
        """
        Publish one message to a channel

        Returns:
            True if successful, False otherwise
        """

    async def start(self):
        pass

    async def stop(self):
        pass


class KafkaRelayPublisher(RelayPublisher):
    """
    Async wrapper around KafkaProducer.

    kafka-python is blocking, so producer creation, sends and flushes run
    in the default executor.
    """

    def __init__(
        self,
        bootstrap_servers: Optional[str] = None,
        topic: Optional[str] = None,
        client_id: str = "travellite-relay",
        acks: str = "1",
        retries: int = 3
    ):
        self.bootstrap_servers = bootstrap_servers or settings.KAFKA_BOOTSTRAP_SERVERS
        self.topic = topic or settings.REALTIME_TOPIC
        self.client_id = client_id
        self.acks = acks
        self.retries = retries
        self._producer: Optional[KafkaProducer] = None

    @property
    def available(self) -> bool:
        return self._producer is not None

    async def start(self):
        """Start the Kafka producer; stays unavailable if the broker is down"""
        if self._producer:
            return
        try:
            loop = asyncio.get_running_loop()
            self._producer = await loop.run_in_executor(None, self._create_producer)
            logger.info(f"[Relay] Kafka producer started, connected to: {self.bootstrap_servers}")
        except KafkaError as e:
            logger.error(f"[Relay] Failed to start Kafka producer: {e}")
            logger.warning("[Relay] Realtime relay unavailable; responses will be logged only")
            self._producer = None

    def _create_producer(self) -> KafkaProducer:
        acks = "all" if self.acks == "all" else int(self.acks)
        return KafkaProducer(
            bootstrap_servers=self.bootstrap_servers.split(","),
            client_id=self.client_id,
            acks=acks,
            retries=self.retries,
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k else None,
            max_block_ms=10000,
            request_timeout_ms=30000
        )

    async def stop(self):
        """Flush and stop the Kafka producer"""
        if not self._producer:
            return
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._producer.flush)
            await loop.run_in_executor(None, self._producer.close)
            logger.info("[Relay] Kafka producer stopped")
        except KafkaError as e:
            logger.error(f"[Relay] Error stopping Kafka producer: {e}")
        finally:
            self._producer = None

    async def publish(self, channel_id: str, message: Dict[str, Any]) -> bool:
        if not self._producer:
            logger.error("[Relay] Kafka producer not started")
            return False

        producer = self._producer
        value = {"room": channel_id, "message": message}

        def _send():
            future = producer.send(self.topic, value=value, key=channel_id)
            return future.get(timeout=10)

        try:
            loop = asyncio.get_running_loop()
            metadata = await loop.run_in_executor(None, _send)
            logger.debug(
                f"[Relay] Sent to {self.topic} room={channel_id} "
                f"partition {metadata.partition} offset {metadata.offset}"
            )
            return True
        except KafkaError as e:
            logger.error(f"[Relay] Error publishing to room {channel_id}: {e}")
            return False


class MemoryRelay(RelayPublisher):
    """
    In-memory relay.

    Usage:
        relay = MemoryRelay()
        await relay.publish("room-1", {"type": "agent_response", "text": "hi"})
        relay.messages("room-1")
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.channels: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    @property
    def available(self) -> bool:
        return self.enabled

    async def publish(self, channel_id: str, message: Dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        self.channels[channel_id].append(dict(message))
        return True

    def messages(self, channel_id: str) -> List[Dict[str, Any]]:
        return list(self.channels.get(channel_id, []))
