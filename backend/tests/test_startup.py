"""
Test suite for the startup sequence, binding decision and process hooks.
"""

import importlib
import socket
import sys
import threading
from unittest.mock import MagicMock, patch

import pytest
import uvicorn
from fastapi import status
from fastapi.testclient import TestClient
from uvicorn.main import STARTUP_FAILURE

from hatim_api import main as gateway_main
from hatim_api.core.bootstrap_log import BootstrapLogger
from hatim_api.core.config import Settings
from hatim_api.core.exceptions import RouteLoadError
from hatim_api.main import (
    Gateway,
    GatewayServer,
    build_gateway,
    create_app,
    install_process_hooks,
    main,
    serve,
)


def load_settings(monkeypatch, tmp_path, **env: str) -> Settings:
    monkeypatch.setenv("BOOTSTRAP_LOG_DIR", str(tmp_path / "logs"))
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    return Settings(_env_file=None)


def read_log(tmp_path) -> str:
    return (tmp_path / "logs" / "startup.log").read_text(encoding="utf-8")


def mark_started(server, sockets=None) -> None:
    server.started = True


@pytest.fixture
def restore_hooks(monkeypatch):
    """Restore sys/threading exception hooks after the test."""
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)


class TestBuildGateway:
    """Test suite for the startup sequence."""

    def test_boot_line_and_snapshot_are_written(self, monkeypatch, tmp_path):
        settings = load_settings(
            monkeypatch, tmp_path, NODE_ENV="production", PASSENGER_APP_PORT="9090"
        )

        gateway = build_gateway(settings)

        log = read_log(tmp_path)
        assert "boot: NODE_ENV=production PORT= PASSENGER_APP_PORT=9090 API_PORT=" in log
        assert (tmp_path / "logs" / "env.json").exists()
        assert gateway.context.port == 9090

    def test_gateway_serves_requests(self, monkeypatch, tmp_path):
        gateway = build_gateway(load_settings(monkeypatch, tmp_path))

        with TestClient(gateway.app) as client:
            response = client.get("/api/health")

        assert response.status_code == status.HTTP_200_OK

    def test_route_failure_aborts_startup(self, monkeypatch, tmp_path):
        settings = load_settings(
            monkeypatch, tmp_path, HATIMS_ROUTES_MODULE="missing.hatims.module"
        )

        with pytest.raises(RouteLoadError):
            build_gateway(settings)

        assert "routes: load failed hatims:" in read_log(tmp_path)


class TestServe:
    """Test suite for the self-binding decision."""

    @patch.object(GatewayServer, "run", autospec=True, side_effect=mark_started)
    def test_binds_all_interfaces_on_resolved_port(self, mock_run, monkeypatch, tmp_path):
        gateway = build_gateway(load_settings(monkeypatch, tmp_path, PORT="8080"))

        serve(gateway)

        (server,), _ = mock_run.call_args
        assert server.config.app is gateway.app
        assert (server.config.host, server.config.port) == ("0.0.0.0", 8080)

    @patch.object(GatewayServer, "run", autospec=True)
    def test_production_without_port_defers_binding(self, mock_run, monkeypatch, tmp_path):
        gateway = build_gateway(
            load_settings(monkeypatch, tmp_path, NODE_ENV="production", API_PORT="7000")
        )

        serve(gateway)

        mock_run.assert_not_called()
        assert "deferred:" in read_log(tmp_path)

    def test_occupied_port_is_not_reported_as_listening(
        self, tmp_path, make_context, route_groups
    ):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen()
            port = blocker.getsockname()[1]
            context = make_context(port=port, host="127.0.0.1")
            gateway = Gateway(
                app=create_app(context, route_groups),
                context=context,
                bootstrap_log=BootstrapLogger(tmp_path / "logs"),
            )

            with pytest.raises(SystemExit) as exc_info:
                serve(gateway)

        assert exc_info.value.code == STARTUP_FAILURE
        log = read_log(tmp_path)
        assert "listening:" not in log
        assert f"listen failed: port={port}" in log


class TestGatewayServer:
    """Test suite for the bind notification."""

    @pytest.mark.asyncio
    async def test_listening_logged_once_bound(self, monkeypatch):
        async def bound(self, sockets=None):
            self.started = True

        monkeypatch.setattr(uvicorn.Server, "startup", bound)
        bootstrap_log = MagicMock()
        server = GatewayServer(uvicorn.Config(MagicMock(), port=8080), bootstrap_log)

        await server.startup()

        bootstrap_log.assert_called_once_with("listening: port=8080")

    @pytest.mark.asyncio
    async def test_nothing_logged_when_startup_stops_early(self, monkeypatch):
        async def stopped(self, sockets=None):
            return None

        monkeypatch.setattr(uvicorn.Server, "startup", stopped)
        bootstrap_log = MagicMock()
        server = GatewayServer(uvicorn.Config(MagicMock(), port=8080), bootstrap_log)

        await server.startup()

        bootstrap_log.assert_not_called()


class TestMain:
    """Test suite for the console entry point."""

    @patch.object(GatewayServer, "run", autospec=True, side_effect=mark_started)
    def test_main_binds_default_port(self, mock_run, monkeypatch, tmp_path, restore_hooks):
        monkeypatch.setenv("BOOTSTRAP_LOG_DIR", str(tmp_path / "logs"))

        main()

        (server,), _ = mock_run.call_args
        assert (server.config.host, server.config.port) == ("0.0.0.0", 3001)

    @patch.object(GatewayServer, "run", autospec=True)
    def test_route_failure_opens_no_socket(self, mock_run, monkeypatch, tmp_path, restore_hooks):
        monkeypatch.setenv("BOOTSTRAP_LOG_DIR", str(tmp_path / "logs"))
        monkeypatch.setenv("AUTH_ROUTES_MODULE", "missing.auth.module")

        with pytest.raises(RouteLoadError):
            main()

        mock_run.assert_not_called()
        assert "routes: load failed auth:" in read_log(tmp_path)


class TestProcessHooks:
    """Test suite for uncaught exception logging."""

    def test_excepthook_logs_and_delegates(self, monkeypatch, restore_hooks):
        previous = MagicMock()
        monkeypatch.setattr(sys, "excepthook", previous)
        bootstrap_log = MagicMock()

        install_process_hooks(bootstrap_log)
        try:
            raise ValueError("kayıp cüz")
        except ValueError:
            sys.excepthook(*sys.exc_info())

        (message,), _ = bootstrap_log.call_args
        assert message.startswith("uncaughtException: Traceback")
        assert "ValueError: kayıp cüz" in message
        previous.assert_called_once()

    def test_thread_excepthook_logs_and_delegates(self, monkeypatch, restore_hooks):
        previous = MagicMock()
        monkeypatch.setattr(threading, "excepthook", previous)
        bootstrap_log = MagicMock()
        install_process_hooks(bootstrap_log)

        def worker():
            raise RuntimeError("thread failed")

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        (message,), _ = bootstrap_log.call_args
        assert "RuntimeError: thread failed" in message
        previous.assert_called_once()

    def test_loop_handler_logs_exception_traceback(self):
        bootstrap_log = MagicMock()
        loop = MagicMock()
        handler = gateway_main.loop_exception_handler(bootstrap_log)

        try:
            raise KeyError("hatim")
        except KeyError as exc:
            context = {"message": "Task exception was never retrieved", "exception": exc}

        handler(loop, context)

        (message,), _ = bootstrap_log.call_args
        assert message.startswith("unhandledRejection: Traceback")
        assert "KeyError: 'hatim'" in message
        loop.default_exception_handler.assert_called_once_with(context)


class TestASGIModule:
    """Test suite for the externally managed entry point."""

    def test_asgi_module_exposes_configured_app(self, monkeypatch, tmp_path, restore_hooks):
        monkeypatch.setenv("BOOTSTRAP_LOG_DIR", str(tmp_path / "logs"))
        monkeypatch.setenv("NODE_ENV", "production")
        monkeypatch.delitem(sys.modules, "hatim_api.asgi", raising=False)

        module = importlib.import_module("hatim_api.asgi")

        assert module.app is module.gateway.app
        assert module.gateway.context.self_binding is False
        assert "asgi: application handed to external process manager" in read_log(tmp_path)
