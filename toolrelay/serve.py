import argparse
import logging
import os

import uvicorn

logger = logging.getLogger("toolrelay.serve")


def _parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="toolrelay", description="Run the tool relay server.")
    ap.add_argument("--host", default=None, help="bind address (default: $HOST)")
    ap.add_argument("--port", type=int, default=None, help="bind port (default: $PORT)")
    ap.add_argument("--log-level", default=None, help="log level (default: $LOG_LEVEL)")
    return ap


def main(argv=None):
    a = _parser().parse_args(argv)
    # flags override the environment before settings are read
    if a.host:
        os.environ["HOST"] = a.host
    if a.port is not None:
        os.environ["PORT"] = str(a.port)
    if a.log_level:
        os.environ["LOG_LEVEL"] = a.log_level

    try:
        from toolrelay.config import reload_settings

        settings = reload_settings()
        from toolrelay.main import app
    except RuntimeError as exc:
        logger.error("startup failed: %s", exc)
        raise SystemExit(1) from exc

    logger.info("push endpoint: http://%s:%d/sse", settings.HOST, settings.PORT)
    try:
        uvicorn.run(
            app,
            host=settings.HOST,
            port=settings.PORT,
            log_level=settings.LOG_LEVEL.lower(),
            timeout_graceful_shutdown=settings.SHUTDOWN_GRACE_SECONDS,
        )
    except OSError as exc:
        logger.error("could not serve on %s:%d: %s", settings.HOST, settings.PORT, exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
