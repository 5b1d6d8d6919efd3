"""Run the relay server: python3 -m fanrelay"""

import uvicorn

from fanrelay.config import settings


def main() -> None:
    uvicorn.run(
        "fanrelay.api.app:app",
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=int(settings.shutdown_timeout) or None,
    )


if __name__ == "__main__":
    main()
