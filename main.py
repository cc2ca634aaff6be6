import uvicorn

from quiz_client.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "quiz_client.main:app",
        host=settings.service_host,
        port=settings.service_port,
        log_level=settings.log_level.lower(),
    )
