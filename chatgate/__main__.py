"""Run the gateway with uvicorn: ``python -m chatgate``."""

import uvicorn

from chatgate.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "chatgate.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
