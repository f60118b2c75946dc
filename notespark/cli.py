"""
NoteSpark CLI - Command-line interface for note extraction.

This module provides the main entry point for the notespark command-line tool.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core.pipeline import PipelineConfig, create_pipeline
from .extraction.error_handling import NoteSparkError
from .extraction.models import ExtractionOptions, ExtractionResult, Tone
from .monitoring.structured_logging import configure_json_logging


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure logging for CLI operations."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    if json_logs:
        configure_json_logging(log_level)
        return
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="notespark",
        description="NoteSpark - cost-aware extraction of structured notes from page images",
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"notespark {__version__}",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Extract and compose share their arguments
    for name, help_text in (
        ("extract", "Extract a structured note, escalating from OCR only when needed"),
        ("compose", "Compose a structured note directly with the multimodal provider"),
    ):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument(
            "images",
            nargs="+",
            help="Page images in page order",
        )
        command_parser.add_argument(
            "-t", "--tone",
            choices=[tone.value for tone in Tone],
            default=Tone.PROFESSIONAL.value,
            help="Tone of the composed note (default: professional)",
        )
        command_parser.add_argument(
            "-o", "--output",
            type=Path,
            help="Output file path (default: stdout)",
        )
        command_parser.add_argument(
            "--format",
            choices=["html", "json"],
            default="html",
            help="Output format (default: html)",
        )
        command_parser.add_argument(
            "--threshold",
            type=float,
            help="OCR confidence threshold (default: 0.7)",
        )
        command_parser.add_argument(
            "--no-fallback",
            action="store_true",
            help="Never escalate to the multimodal provider",
        )
        command_parser.add_argument(
            "--timeout",
            type=float,
            help="Per-call timeout in seconds",
        )

    # Cost command
    cost_parser = subparsers.add_parser(
        "cost",
        help="Estimate processing cost",
    )
    cost_parser.add_argument(
        "image_count",
        type=int,
        help="Number of page images",
    )
    cost_parser.add_argument(
        "--avg-text-length",
        type=int,
        default=2000,
        help="Average characters per page (default: 2000)",
    )
    cost_parser.add_argument(
        "--method",
        choices=["ocr_only", "ocr_with_text_formatting", "multimodal"],
        default="ocr_only",
        help="Processing method (default: ocr_only)",
    )

    # Health command
    health_parser = subparsers.add_parser(
        "health",
        help="Report provider configuration and recommended method",
    )
    health_parser.add_argument(
        "--live",
        action="store_true",
        help="Probe the multimodal provider with a small request",
    )

    return parser.parse_args(argv)


def format_result(result: Optional[ExtractionResult], output_format: str) -> str:
    if result is None:
        if output_format == "json":
            return json.dumps({"text": None, "message": "No text detected"}, indent=2)
        return ""
    if output_format == "json":
        return json.dumps(result.to_dict(), indent=2, default=str)
    return result.structured_text


async def cmd_extract(args: argparse.Namespace) -> int:
    """Execute the extract and compose commands."""
    logger = logging.getLogger(__name__)

    options = ExtractionOptions(
        quality_threshold=args.threshold,
        allow_fallback=not args.no_fallback,
        timeout_seconds=args.timeout,
    )

    logger.info(f"Processing {len(args.images)} image(s) with tone '{args.tone}'")

    try:
        pipeline = create_pipeline(PipelineConfig.from_env())

        if args.command == "compose":
            result = await pipeline.compose_structured_note(args.images, args.tone, options)
        elif len(args.images) == 1:
            result = await pipeline.extract_text(args.images[0], options, args.tone)
        else:
            result = await pipeline.extract_text_batch(args.images, options, args.tone)
    except NoteSparkError as e:
        logger.error(f"Extraction failed: {e}")
        return 1

    if result is None:
        logger.warning("No text detected")

    output_str = format_result(result, args.format)

    if args.output:
        with open(args.output, "w") as f:
            f.write(output_str)
        logger.info(f"Output written to: {args.output}")
    else:
        print(output_str)

    return 0


def cmd_cost(args: argparse.Namespace) -> int:
    """Execute the cost command."""
    logger = logging.getLogger(__name__)
    pipeline = create_pipeline(PipelineConfig.from_env())

    try:
        breakdown = pipeline.estimate_cost(args.image_count, args.avg_text_length, args.method)
    except NoteSparkError as e:
        logger.error(str(e))
        return 1

    print(json.dumps(
        {
            "method": breakdown.method,
            "image_count": args.image_count,
            "ocr_cost": round(breakdown.ocr_cost, 6),
            "text_model_cost": round(breakdown.text_model_cost, 6),
            "multimodal_cost": round(breakdown.multimodal_cost, 6),
            "total_cost": round(breakdown.total_cost, 6),
        },
        indent=2
    ))
    return 0


async def cmd_health(args: argparse.Namespace) -> int:
    """Execute the health command."""
    pipeline = create_pipeline(PipelineConfig.from_env())
    report = await pipeline.check_provider_health() if args.live else pipeline.get_health()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.recommended_method != "service_unavailable" else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for notespark CLI."""
    args = parse_args(argv)

    # Setup logging
    log_level = "DEBUG" if args.verbose else "INFO"
    setup_logging(log_level, args.json_logs)

    # Dispatch command
    if args.command in ("extract", "compose"):
        return asyncio.run(cmd_extract(args))
    elif args.command == "cost":
        return cmd_cost(args)
    elif args.command == "health":
        return asyncio.run(cmd_health(args))
    else:
        print("NoteSpark - structured notes from page images")
        print()
        print("Usage: notespark <command> [options]")
        print()
        print("Commands:")
        print("  extract  Extract a note, OCR first with multimodal fallback")
        print("  compose  Compose a note with the multimodal provider")
        print("  cost     Estimate processing cost")
        print("  health   Report provider status")
        print()
        print("Run 'notespark <command> --help' for command-specific help.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
