"""Run the API with uvicorn: ``python -m userapi``."""
import uvicorn

from userapi.config import settings


def main() -> None:
    uvicorn.run(
        "userapi.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
