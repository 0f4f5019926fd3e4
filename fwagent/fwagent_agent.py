from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from .attributes import AttributeListener
from .config import AgentConfig, AgentConfigError, load_config_from_env
from .installer import UpdateInstaller
from .observability import configure_logging
from .sensors import SensorBackend, SensorConfigError, build_sensor_backend, load_sensor_config_from_env
from .state import AgentState
from .supervisor import AgentSupervisor
from .telemetry import TelemetryLoop
from .topics import Topics
from .transfer import ChunkTransferEngine
from .transport import TransportSession, build_client_factory

log = logging.getLogger("fwagent")


def build_supervisor(config: AgentConfig, sensor: SensorBackend) -> AgentSupervisor:
    topics = Topics(attributes_base=config.attributes_base, firmware_base=config.firmware_base)
    state = AgentState(executable_identity=config.executable_identity)

    transport = TransportSession(
        client_factory=build_client_factory(config),
        subscriptions=topics.subscriptions(),
        is_active=lambda: state.active,
        greeting=(topics.attributes_request, "{}"),
        reconnect_initial_s=config.reconnect_initial_s,
        reconnect_max_s=config.reconnect_max_s,
    )
    installer = UpdateInstaller(install_dir=config.install_dir)
    engine = ChunkTransferEngine(
        state=state,
        publisher=transport,
        installer=installer,
        topics=topics,
        chunk_size=config.chunk_size,
    )
    listener = AttributeListener(
        state=state,
        engine=engine,
        loader_stub_suffixes=config.loader_stub_suffixes,
    )
    telemetry = TelemetryLoop(
        state=state,
        publisher=transport,
        sensor=sensor,
        topic=topics.telemetry,
        interval_s=config.telemetry_interval_s,
    )
    return AgentSupervisor(
        state=state,
        topics=topics,
        transport=transport,
        listener=listener,
        engine=engine,
        installer=installer,
        telemetry=telemetry,
    )


def main() -> None:
    # Load repo-level .env (if present), then package-local overrides.
    load_dotenv()
    load_dotenv(Path(__file__).resolve().parent / ".env")

    try:
        config = load_config_from_env()
    except AgentConfigError as exc:
        raise SystemExit(f"[fwagent] invalid config: {exc}") from exc

    configure_logging(level=config.log_level, log_format=config.log_format)

    try:
        sensor_config = load_sensor_config_from_env()
        sensor = build_sensor_backend(config=sensor_config, seed=config.client_id or config.executable_identity)
    except SensorConfigError as exc:
        raise SystemExit(f"[fwagent] invalid sensor config: {exc}") from exc

    log.info(
        "broker=%s:%d attributes=%s firmware=%s chunk=%d sensors=%s install_dir=%s",
        config.mqtt_host,
        config.mqtt_port,
        config.attributes_base,
        config.firmware_base,
        config.chunk_size,
        sensor_config.backend,
        config.install_dir,
    )

    supervisor = build_supervisor(config, sensor)
    raise SystemExit(asyncio.run(supervisor.run()))


if __name__ == "__main__":
    main()
