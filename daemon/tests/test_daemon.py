"""Tests for daemon orchestration."""

import asyncio
import signal
from unittest.mock import AsyncMock, Mock

import pytest

from wagate.config import Config, StatusServerConfig
from wagate.daemon import Daemon
from wagate.errors import StartupError
from wagate.protocols import ConnectionOpened, ConnectionState


def make_config(tmp_path, **overrides):
    values = dict(
        credentials_dir=str(tmp_path / "credentials"),
        lock_file=str(tmp_path / "wagate.lock"),
        status_server=StatusServerConfig(enabled=False),
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


class TestDaemonStart:
    """Tests for daemon startup."""

    @pytest.mark.asyncio
    async def test_start_opens_session(self, config, transport, credential_store):
        daemon = Daemon(
            config,
            transport=transport,
            credential_store=credential_store,
            install_signal_handlers=False,
        )

        await daemon.start()
        try:
            assert len(transport.connect_calls) == 1
            assert daemon.manager.state is ConnectionState.CONNECTING
        finally:
            await daemon.stop()
            await daemon.run_forever()

    @pytest.mark.asyncio
    async def test_manager_unavailable_before_start(self, config):
        daemon = Daemon(config, install_signal_handlers=False)

        with pytest.raises(RuntimeError, match="not started"):
            daemon.manager

    @pytest.mark.asyncio
    async def test_missing_transport_is_startup_error(self, config, credential_store):
        daemon = Daemon(
            config, credential_store=credential_store, install_signal_handlers=False
        )

        with pytest.raises(StartupError, match="No transport configured"):
            await daemon.start()

    @pytest.mark.asyncio
    async def test_default_credential_store_under_config_dir(self, tmp_path, transport):
        config = make_config(tmp_path)
        daemon = Daemon(config, transport=transport, install_signal_handlers=False)

        await daemon.start()
        await daemon.stop()
        await daemon.run_forever()

        assert (tmp_path / "credentials").is_dir()

    @pytest.mark.asyncio
    async def test_status_server_started(self, tmp_path, transport, credential_store):
        config = make_config(
            tmp_path, status_server=StatusServerConfig(host="127.0.0.1", port=0)
        )
        daemon = Daemon(
            config,
            transport=transport,
            credential_store=credential_store,
            install_signal_handlers=False,
        )

        await daemon.start()
        try:
            assert daemon.status_server.get_port() > 0
        finally:
            await daemon.stop()
            await daemon.run_forever()

    @pytest.mark.asyncio
    async def test_status_server_bind_failure(self, tmp_path, transport, credential_store):
        config = make_config(tmp_path, status_server=StatusServerConfig(port=8790))
        server = Mock()
        server.start = AsyncMock(side_effect=OSError("address in use"))
        daemon = Daemon(
            config,
            transport=transport,
            credential_store=credential_store,
            status_server=server,
            install_signal_handlers=False,
        )

        with pytest.raises(StartupError, match="address in use"):
            await daemon.start()


class TestDaemonRun:
    """Tests for run_forever, send and shutdown."""

    @pytest.mark.asyncio
    async def test_send_delegates_to_manager(self, config, transport, credential_store):
        daemon = Daemon(
            config,
            transport=transport,
            credential_store=credential_store,
            install_signal_handlers=False,
        )
        await daemon.start()
        transport.handle.emit(ConnectionOpened())
        await daemon.manager.wait_for_events()

        result = await daemon.send("15551234567", "hello")

        assert result.ok
        assert transport.handle.sent == [("15551234567", "hello")]
        await daemon.stop()
        await daemon.run_forever()

    @pytest.mark.asyncio
    async def test_stop_shuts_manager_down(self, config, transport, credential_store):
        daemon = Daemon(
            config,
            transport=transport,
            credential_store=credential_store,
            install_signal_handlers=False,
        )
        await daemon.start()

        runner = asyncio.create_task(daemon.run_forever())
        await asyncio.sleep(0)
        await daemon.stop()
        await asyncio.wait_for(runner, timeout=1.0)

        assert transport.handle.closed
        assert daemon.manager.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_signal_handlers_installed_and_removed(
        self, config, transport, credential_store
    ):
        daemon = Daemon(config, transport=transport, credential_store=credential_store)
        loop = asyncio.get_running_loop()

        await daemon.start()
        await daemon.stop()
        await daemon.run_forever()

        # Removing again reports nothing to remove
        assert loop.remove_signal_handler(signal.SIGTERM) is False
