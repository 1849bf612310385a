"""
NATS Event Bus Mock for Component Testing

Records published events and lets tests push events at subscribed handlers.
"""
import fnmatch
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional


class MockEventBus:
    """Mock for NATSEventBus"""

    def __init__(self):
        self.published_events: List[Dict[str, Any]] = []
        self.subscriptions: Dict[str, Callable] = {}
        self._should_raise: Optional[Exception] = None
        self._return_value: Optional[bool] = None

    async def publish_event(self, event: Any):
        """Record the event; returns None (treated as success) unless configured"""
        if self._should_raise:
            raise self._should_raise

        self.published_events.append({
            "id": getattr(event, "id", "mock_event_id"),
            "type": str(getattr(event, "type", "unknown")),
            "source": str(getattr(event, "source", "unknown")),
            "subject": getattr(event, "subject", None),
            "data": getattr(event, "data", {}),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        return self._return_value

    async def subscribe_to_events(self, pattern: str, handler: Callable, durable: Optional[str] = None):
        self.subscriptions[pattern] = handler

    async def close(self):
        pass

    # Test helper methods

    def get_published(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Published events, optionally filtered by type"""
        if event_type:
            return [e for e in self.published_events if e.get("type") == event_type]
        return self.published_events

    def get_last_event(self) -> Optional[Dict[str, Any]]:
        return self.published_events[-1] if self.published_events else None

    def clear(self):
        self.published_events.clear()
        self.subscriptions.clear()

    def set_error(self, error: Exception):
        """Raise on every publish"""
        self._should_raise = error

    def set_publish_result(self, result: Optional[bool]):
        """Value returned by publish_event (False simulates a rejected publish)"""
        self._return_value = result

    def assert_event_published(self, event_type: str, data_match: Optional[Dict] = None):
        events = self.get_published(event_type)
        assert events, f"No events of type '{event_type}' were published. Published: {self.published_events}"

        if data_match:
            for event in events:
                if all(event.get("data", {}).get(k) == v for k, v in data_match.items()):
                    return event
            raise AssertionError(f"No event of type '{event_type}' matched data {data_match}. Events: {events}")
        return events[0]

    def assert_no_events_published(self, event_type: Optional[str] = None):
        events = self.get_published(event_type)
        assert not events, f"Expected no events, but got: {events}"

    async def simulate_event(self, subject: str, data: Dict[str, Any]) -> int:
        """Deliver an event to every matching handler; returns how many ran"""

        class MockEvent:
            def __init__(self, data):
                self.data = data
                self.type = subject
                self.source = "test"
                self.id = "mock_id"

        delivered = 0
        for pattern, handler in self.subscriptions.items():
            if self._matches_pattern(pattern, subject):
                await handler(MockEvent(data))
                delivered += 1
        return delivered

    def _matches_pattern(self, pattern: str, subject: str) -> bool:
        """NATS-style wildcards: '*' one token, '>' the rest"""
        if pattern.endswith(">"):
            return subject.startswith(pattern[:-1])
        return fnmatch.fnmatch(subject.replace(".", "/"), pattern.replace(".", "/"))
