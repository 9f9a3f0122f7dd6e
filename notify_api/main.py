import uvicorn

from notify_api.core.app_factory import create_app
from notify_api.core.config import settings

app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the APP_HOST/APP_PORT settings."""
    # log_config=None keeps the handlers installed by configure_logging
    uvicorn.run(
        "notify_api.main:app",
        host=settings.app.host,
        port=settings.app.port,
        workers=settings.app.workers,
        proxy_headers=settings.app.trust_forwarded_for,
        log_config=None,
    )


if __name__ == "__main__":
    run()
