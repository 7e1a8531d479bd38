"""Prometheus metrics, collected in an isolated registry."""

from prometheus_client import CollectorRegistry, Counter, Gauge

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

MESSAGES_SENT = Counter(
    "pair_chat_messages_sent_total",
    "Messages persisted through the API",
    registry=CUSTOM_REGISTRY,
)
CONVERSATIONS_CREATED = Counter(
    "pair_chat_conversations_created_total",
    "Conversations created",
    registry=CUSTOM_REGISTRY,
)
REALTIME_EVENTS = Counter(
    "pair_chat_realtime_events_total",
    "Inbound realtime events by name",
    ["event"],
    registry=CUSTOM_REGISTRY,
)
REALTIME_DELIVERIES = Counter(
    "pair_chat_realtime_deliveries_total",
    "Relayed events by delivery outcome",
    ["outcome"],
    registry=CUSTOM_REGISTRY,
)
ONLINE_USERS = Gauge(
    "pair_chat_online_users",
    "Users with a live realtime connection",
    registry=CUSTOM_REGISTRY,
)
