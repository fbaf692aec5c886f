#!/usr/bin/env python3
"""
Script to run a single department against a request.

Usage:
    python scripts/run_department.py --department story --prompt "Outline the pilot episode"
    python scripts/run_department.py --department audio --prompt "Score the opening" --output audio.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repositories.loader import load_registry
from studio_departments.config import Settings
from studio_departments.services import build_services, build_store


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


async def main():
    parser = argparse.ArgumentParser(description="Run one department's head and specialists")

    parser.add_argument("--department", required=True, help="Department id or slug")
    parser.add_argument("--prompt", required=True, help="Instructions for the department")
    parser.add_argument("--project", help="Project id recorded on executions")
    parser.add_argument("--registry", help="YAML agent registry (default: ORCHESTRATION_REGISTRY_FILE)")
    parser.add_argument("--head-only", action="store_true", help="Skip specialists")
    parser.add_argument("--memory-store", action="store_true", help="Keep execution records in memory only")
    parser.add_argument("--output", help="Output file for the department result (default: stdout)")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        settings = Settings.load()
        registry = load_registry(args.registry or settings.orchestration.registry_file)

        store = None
        if args.memory_store:
            store = build_store(settings.audit, persistent=False)

        services = build_services(settings, registry, store=store)

        context = {"project_id": args.project} if args.project else {}
        result = await services.coordinator.process(
            args.department, args.prompt, context, requires_specialists=not args.head_only
        )

        payload = result.model_dump(mode="json")
        if args.output:
            with open(args.output, 'w') as f:
                json.dump(payload, f, indent=2, default=str)
            logger.info(f"Results written to {args.output}")
        else:
            print(json.dumps(payload, indent=2, default=str))

        logger.info(f"Department quality: {result.quality_score}")
        logger.info(
            f"Specialists: {result.metadata.specialists_used} used, "
            f"{result.metadata.successful_specialists} approved"
        )

    except Exception as e:
        logger.error(f"Script failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
