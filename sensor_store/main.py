"""
Command-line entry point for the sensor storage layer.

Initializes the shared storage service, optionally loads readings from a
JSON file, and prints which backend is active along with its statistics.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import List, Optional

from sensor_store.config import AppConfig
from sensor_store.storage.registry import close_storage_service, get_storage_service
from sensor_store.utils import setup_logging


async def run(config: AppConfig, input_path: Optional[Path] = None) -> int:
    """
    Initialize storage, load optional input and print a summary.

    Args:
        config: Application configuration
        input_path: Optional JSON file holding one reading or a list of readings

    Returns:
        Process exit code
    """
    service = await get_storage_service(config.storage)
    try:
        print(f"Storage backend: {service.backend_kind.value}")
        print(f"   Database-backed: {service.is_available}")

        if input_path:
            with open(input_path, 'r') as f:
                records = json.load(f)
            result = await service.insert(records)
            print(f"   Inserted {result.record_count} records from {input_path}")

        stats = await service.get_stats()
        print(f"\n📊 Storage Summary:")
        print(f"   Total records: {stats.total}")
        for entry in stats.by_type:
            print(f"   {entry.reading_type}: {entry.count}")
        print(f"   Latest reading: {stats.latest_timestamp}")
        return 0
    finally:
        await close_storage_service(config.storage)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Agricultural sensor storage")
    parser.add_argument("--config", type=Path, default=None, help="Path to YAML configuration")
    parser.add_argument("--input", type=Path, default=None, help="JSON file of readings to insert")
    args = parser.parse_args(argv)

    try:
        config = AppConfig.load(args.config)
    except Exception as e:
        print(f"Failed to load configuration: {e}")
        return 1

    setup_logging(config.logging.level, config.logging.file)
    return asyncio.run(run(config, args.input))


if __name__ == "__main__":
    raise SystemExit(main())
