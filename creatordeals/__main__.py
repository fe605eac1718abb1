"""Run the API with uvicorn: ``python -m creatordeals``."""
import logging

import uvicorn

from creatordeals.config import settings


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("creatordeals.main:app", host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    main()
