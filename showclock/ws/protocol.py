"""Realtime wire constants shared by the notifier, the hub and viewers."""

# Event names published on an event channel
TIMER_UPDATED = "TIMER_UPDATED"
ACTION_UPDATED = "ACTION_UPDATED"
ACTION_STARTED = "ACTION_STARTED"
ACTION_COMPLETED = "ACTION_COMPLETED"
TIME_JUMP = "TIME_JUMP"

EVENT_NAMES = (TIMER_UPDATED, ACTION_UPDATED, ACTION_STARTED, ACTION_COMPLETED, TIME_JUMP)

# Payload key carrying the monotonic stamp viewers deduplicate on
UPDATED_AT = "updatedAt"

# WebSocket frames
MSG_SUBSCRIBED = "subscribed"
MSG_EVENT = "event"
MSG_HEARTBEAT = "heartbeat"
MSG_HEARTBEAT_ACK = "heartbeat_ack"
MSG_ERROR = "error"
