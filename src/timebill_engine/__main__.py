"""Run the timebill engine API with uvicorn."""

import uvicorn

from timebill_engine.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "timebill_engine.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
