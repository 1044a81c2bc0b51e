import json
import logging
from branchqueue.platform.ports.event_bus import EventBusPort

log = logging.getLogger("bus.noop")

class NoopEventBus(EventBusPort):
    """Logs events instead of delivering them; keeps the last ones for inspection."""

    def __init__(self, keep: int = 100):
        self.keep = keep
        self.published: list[dict] = []

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        self.published = (self.published + [{"topic": topic, "key": key, "value": value}])[-self.keep:]
        log.info(f"[NOOP BUS] topic={topic} key={key} event={value.get('event_type')} value={json.dumps(value, default=str)}")

    async def close(self) -> None:
        log.info(f"[NOOP BUS] closed after {len(self.published)} kept events")
