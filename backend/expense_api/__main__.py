import uvicorn

from .config import settings


def main() -> None:
    uvicorn.run("expense_api.main:app", host=settings.host, port=settings.port, reload=settings.dev_mode)


if __name__ == "__main__":
    main()
