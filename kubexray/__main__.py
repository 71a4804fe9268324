import uvicorn

from kubexray.core.config import settings


def main():
    uvicorn.run(
        "kubexray.main:app",
        host=settings.WEBHOOK_HOST,
        port=settings.WEBHOOK_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
