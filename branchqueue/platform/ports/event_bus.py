from typing import Protocol, runtime_checkable

@runtime_checkable
class EventBusPort(Protocol):
    """Delivery target for domain events relayed out of the outbox."""
    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None: ...
    async def close(self) -> None: ...
