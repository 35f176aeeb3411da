"""Drop and recreate every table. DEV MODE ONLY."""
import asyncio
import logging

from marketplace.app.db import init_models

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_models(drop=True))
