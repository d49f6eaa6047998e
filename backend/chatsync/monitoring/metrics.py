"""Metric definitions for the projection, saga and change-relay paths."""

from __future__ import annotations

from .registry import registry

projection_recomputes_total = registry.counter(
    "chatsync_projection_recomputes_total",
    "Full message-list recomputations triggered by change-stream snapshots.",
    label_names=("stream",),
)

media_saga_total = registry.counter(
    "chatsync_media_saga_total",
    "Media send sagas by final outcome.",
    label_names=("outcome",),
)

store_change_events_total = registry.counter(
    "chatsync_store_change_events_total",
    "Collection change notifications delivered to local watchers.",
    label_names=("origin",),
)

active_watches = registry.gauge(
    "chatsync_active_watches",
    "Number of open change-stream watches.",
    label_names=("kind",),
)

realtime_transport_restarts_total = registry.counter(
    "chatsync_realtime_transport_restarts_total",
    "Number of realtime transport reconnections.",
    label_names=("backend", "reason"),
)
