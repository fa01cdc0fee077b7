from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from app.config import load_config, setup_logging
from app.domain.exceptions import EnergyScheduleError


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    start_scheduler: bool = False,
    **container_kwargs: Any,
) -> Flask:
    """
    Build the Flask host for the schedule engine.

    The app carries the ServiceContainer under ``app.config["CONTAINER"]``
    so an embedding web layer can reach the ScheduleStore; this package
    registers no routes of its own.

    Args:
        config_overrides: AppConfig field overrides (keys are case-insensitive)
        start_scheduler: Register the jobs and start the scheduler loop
        **container_kwargs: Forwarded to ServiceContainer.build (device, forecast, clock)
    """
    config = load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            attr = key if hasattr(config, key) else key.lower()
            setattr(config, attr, value)

    setup_logging(debug=config.DEBUG, log_file=config.log_file, level=config.log_level)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    from app.services.container import ServiceContainer

    container = ServiceContainer.build(config, start_scheduler=start_scheduler, **container_kwargs)
    flask_app.config["CONTAINER"] = container
    flask_app.teardown_appcontext(container.database.close_db)

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    atexit.register(_graceful_shutdown, "atexit")
    flask_app.extensions["energy_shutdown"] = _graceful_shutdown

    if start_scheduler:
        # SIGINT=Ctrl-C, SIGTERM=container/systemd stop
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(OSError, ValueError):
                signal.signal(sig, _signal_handler)

    # Domain exceptions carry their own ``http_status``
    @flask_app.errorhandler(EnergyScheduleError)
    def _handle_domain_error(exc: EnergyScheduleError):
        status = exc.http_status
        if status >= 500:
            logging.getLogger(__name__).error("%s: %s", type(exc).__name__, exc, exc_info=True)
            return jsonify({"ok": False, "error": "Internal error"}), status
        # 4xx: surface the message; it was written for the caller.
        return jsonify({"ok": False, "error": str(exc) or "Request failed", "detail": exc.detail}), status

    @flask_app.errorhandler(HTTPException)
    def _handle_http_error(exc: HTTPException):
        return jsonify({"ok": False, "error": exc.description or "Request failed"}), int(exc.code or 500)

    logging.getLogger(__name__).info("Energy schedule engine initialized successfully.")
    return flask_app


__all__ = ["create_app"]
