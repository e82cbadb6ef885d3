"""Run the service with Uvicorn: ``python -m linkgate``."""

import uvicorn

from linkgate.core.config import settings


def main() -> None:
    uvicorn.run(
        "linkgate.main:app",
        host=settings.app.host,
        port=settings.app.port,
        workers=settings.app.workers,
        log_config=None,
    )


if __name__ == "__main__":
    main()
