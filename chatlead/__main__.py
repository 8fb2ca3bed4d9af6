"""Run the API with uvicorn: ``python -m chatlead``."""

import uvicorn

from chatlead.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "chatlead.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        reload=settings.app_env == "dev",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
