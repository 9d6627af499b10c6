"""Server entry point"""

import uvicorn

from streamalerts.core.config import get_settings


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "streamalerts.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
