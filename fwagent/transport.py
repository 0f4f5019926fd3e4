from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Sequence

import aiomqtt

from .config import AgentConfig

log = logging.getLogger("fwagent.transport")


class TransportError(RuntimeError):
    """Raised when the broker session cannot carry a request."""


class TransportConnectError(TransportError, ConnectionError):
    """Raised when a connection to the broker cannot be established."""


@dataclass(frozen=True)
class InboundMessage:
    topic: str
    payload: bytes


class Publisher(Protocol):
    async def publish(self, topic: str, payload: str | bytes) -> None: ...


ClientFactory = Callable[[], Any]
SleepFn = Callable[[float], Awaitable[None]]


def build_client_factory(config: AgentConfig) -> ClientFactory:
    """Return a factory producing a fresh, unconnected MQTT client per attempt."""

    def _factory() -> aiomqtt.Client:
        kwargs: dict[str, Any] = {
            "hostname": config.mqtt_host,
            "port": config.mqtt_port,
            "keepalive": config.keepalive_s,
        }
        # ThingsBoard authenticates devices by access token in the username field.
        if config.access_token:
            kwargs["username"] = config.access_token
        if config.client_id:
            kwargs["identifier"] = config.client_id
        return aiomqtt.Client(**kwargs)

    return _factory


def _as_bytes(payload: Any) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    return str(payload).encode("utf-8")


class TransportSession:
    """Broker session with subscribe-on-connect and reconnect-while-active.

    Every successful (re)connect re-issues ``subscriptions`` and then publishes
    ``greeting`` (topic, payload) when one is given. Reconnects are attempted
    only while ``is_active()`` returns True; after that a disconnect is final.
    """

    def __init__(
        self,
        *,
        client_factory: ClientFactory,
        subscriptions: Sequence[str],
        is_active: Callable[[], bool],
        greeting: tuple[str, str] | None = None,
        reconnect_initial_s: float = 1.0,
        reconnect_max_s: float = 60.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client_factory = client_factory
        self._subscriptions = tuple(subscriptions)
        self._is_active = is_active
        self._greeting = greeting
        self._reconnect_initial_s = reconnect_initial_s
        self._reconnect_max_s = reconnect_max_s
        self._sleep = sleep
        self._client: Any | None = None
        self.connections = 0

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        client = self._client_factory()
        try:
            await client.__aenter__()
        except (aiomqtt.MqttError, OSError) as exc:
            raise TransportConnectError(f"MQTT connect failed: {exc}") from exc

        self._client = client
        try:
            for pattern in self._subscriptions:
                await client.subscribe(pattern)
                log.debug("subscribed %s", pattern)
            if self._greeting is not None:
                topic, payload = self._greeting
                await client.publish(topic, payload=payload)
        except aiomqtt.MqttError as exc:
            await self._drop_client()
            raise TransportConnectError(f"MQTT session setup failed: {exc}") from exc

        self.connections += 1
        log.info("connected to broker (connection #%d)", self.connections)

    async def subscribe(self, topic_pattern: str) -> None:
        client = self._require_client()
        try:
            await client.subscribe(topic_pattern)
        except aiomqtt.MqttError as exc:
            raise TransportError(f"subscribe to {topic_pattern} failed: {exc}") from exc

    async def publish(self, topic: str, payload: str | bytes) -> None:
        client = self._require_client()
        try:
            await client.publish(topic, payload=payload)
        except aiomqtt.MqttError as exc:
            raise TransportError(f"publish to {topic} failed: {exc}") from exc

    async def messages(self) -> AsyncIterator[InboundMessage]:
        """Yield inbound messages across reconnects until the agent goes inactive."""

        while True:
            client = self._client
            if client is not None:
                try:
                    async for message in client.messages:
                        yield InboundMessage(topic=str(message.topic), payload=_as_bytes(message.payload))
                except aiomqtt.MqttError as exc:
                    log.warning("broker connection lost: %s", exc)
                await self._drop_client()

            if not self._is_active():
                log.info("disconnected; agent inactive, not reconnecting")
                return
            if not await self._reconnect():
                return

    async def disconnect(self) -> None:
        if self._client is None:
            return
        await self._drop_client()
        log.info("disconnected from broker")

    def _require_client(self) -> Any:
        if self._client is None:
            raise TransportError("not connected to broker")
        return self._client

    async def _drop_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except (aiomqtt.MqttError, OSError) as exc:
            log.debug("ignoring error while closing broker connection: %r", exc)

    def _backoff_s(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        base = min(self._reconnect_max_s, self._reconnect_initial_s * (2 ** min(failures - 1, 8)))
        # Jitter to avoid a fleet reconnecting in lockstep after a broker restart.
        return min(self._reconnect_max_s, base * random.uniform(0.8, 1.2))

    async def _reconnect(self) -> bool:
        failures = 0
        while self._is_active():
            delay = self._backoff_s(failures)
            if delay > 0:
                log.info("reconnecting in %.1fs", delay)
                await self._sleep(delay)
                if not self._is_active():
                    break
            try:
                await self.connect()
                return True
            except TransportConnectError as exc:
                failures += 1
                log.warning("reconnect attempt %d failed: %s", failures, exc)
        return False
