#!/usr/bin/env python3
"""
Show the resolved progress of a treatment.

Usage:
    python scripts/show_progress.py --treatment-id ID [options]

Options:
    --treatment-id ID   Treatment to resolve (required)
    --fixture PATH      Read records from a JSON fixture instead of the API
    --json              Print the raw progress as JSON
    --log-level LEVEL   Logging level (DEBUG, INFO, WARNING, ERROR)

The clinic API is configured through .env (CLINIC_API_BASE_URL,
CLINIC_API_TOKEN, ...).
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from treatment_workflow.client import (
    InMemoryRecordSource,
    RecordNotFound,
    RestRecordSource,
)
from treatment_workflow.config import get_settings
from treatment_workflow.models.steps import StepState
from treatment_workflow.service import TreatmentProgressService


STATE_MARKERS = {
    StepState.COMPLETED: "[x]",
    StepState.CURRENT: "[>]",
    StepState.PAST: "[~]",
    StepState.PENDING: "[ ]",
}


# Configure logging
def setup_logging(level: str = "INFO"):
    """Configure logging with specified level."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )
    return logging.getLogger(__name__)


def print_progress(progress) -> None:
    resolution = progress.resolution
    protocol = progress.protocol.value if progress.protocol else "unknown"

    print(f"\nTreatment {progress.treatment_id} ({protocol})")
    print("=" * 60)
    print(f"Cycles:        {len(progress.cycles)}")
    active = resolution.active_cycle
    print(f"Active cycle:  {active.id + ' - ' + (active.cycle_name or '') if active else '-'}")
    print(f"Current step:  {resolution.current_step.label if resolution.current_step else '-'}"
          f"  (via {resolution.source})")
    print(f"Next step:     {resolution.next_step.label if resolution.next_step else '-'}")
    print(f"Progress:      {progress.timeline.progress_percentage:.0f}%")
    if progress.degraded_reads:
        print(f"Degraded:      {', '.join(progress.degraded_reads)}")

    print("\nTimeline:")
    for entry in progress.timeline.entries:
        print(f"  {STATE_MARKERS[entry.state]} {entry.step.ordinal}. {entry.step.label}")


def main():
    parser = argparse.ArgumentParser(
        description="Resolve and display treatment progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--treatment-id", required=True, help="Treatment id")
    parser.add_argument("--fixture", type=Path, help="JSON fixture to read instead of the API")
    parser.add_argument("--json", action="store_true", help="Print progress as JSON")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default from LOG_LEVEL)",
    )
    args = parser.parse_args()

    settings = get_settings()
    logger = setup_logging(args.log_level or settings.log_level)

    if args.fixture:
        if not args.fixture.exists():
            logger.error(f"Fixture not found: {args.fixture}")
            return 1
        source = InMemoryRecordSource.from_json_file(args.fixture)
    else:
        source = RestRecordSource(settings=settings)

    with source, TreatmentProgressService(source, settings=settings) as service:
        try:
            progress = service.get_progress(args.treatment_id)
        except RecordNotFound as e:
            logger.error(str(e))
            return 1

    if args.json:
        print(json.dumps(progress.to_dict(), indent=2))
    else:
        print_progress(progress)
    return 0


if __name__ == "__main__":
    sys.exit(main())
