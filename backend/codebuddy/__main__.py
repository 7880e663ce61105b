import uvicorn

from codebuddy.core.config import settings

if __name__ == "__main__":
    uvicorn.run("codebuddy.main:app", host=settings.host, port=settings.port, reload=settings.debug)
