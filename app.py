import json
import logging
import os
import sys

from campaign_store.app import create_app
from campaign_store.logging_config import configure_logging

configure_logging()

logger = logging.getLogger("campaign_store.app")


def load_records(path: str) -> list:
    """Read a JSON array of campaign records from path."""
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("records", [])
    return data


if __name__ == "__main__":
    # 1. Optional snapshot directory and data file from env / argv
    storage_root = os.getenv("CAMPAIGN_STORE_SNAPSHOTS")
    data_path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("CAMPAIGN_STORE_DATA")

    context = create_app(storage_root=storage_root)

    # 2. Bulk load, if a file was given
    if data_path:
        context.controller.load_data(load_records(data_path))

    logger.info("Campaign store ready", extra={"stats": context.controller.get_stats()})
