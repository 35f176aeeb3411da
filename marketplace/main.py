# marketplace/main.py
"""Run the API server: ``python -m marketplace.main``."""
import uvicorn

from marketplace.app.core.config import settings


def main() -> None:
    # SIGINT/SIGTERM stop accepting connections and drain in-flight requests;
    # whatever is still running after SHUTDOWN_TIMEOUT seconds is cut off.
    uvicorn.run(
        "marketplace.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        proxy_headers=True,
        timeout_graceful_shutdown=settings.SHUTDOWN_TIMEOUT,
    )


if __name__ == "__main__":
    main()
