"""
Kafka Integration Module
Publish capability for the realtime relay
"""

from .relay_publisher import KafkaRelayPublisher, MemoryRelay, RelayPublisher

__all__ = [
    "RelayPublisher",
    "KafkaRelayPublisher",
    "MemoryRelay",
]
