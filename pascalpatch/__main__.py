"""CLI entrypoint for patch extraction.

Usage:
    python -m pascalpatch [listing] [--output <template>] [--config config.yaml]
                          [--workers N] [--json] [--verbose] [--version]

Without a listing file the annotation paths are read from stdin and resolved
against the current directory.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import nullcontext
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from pascalpatch import __version__
from pascalpatch.annotation.grammar import AnnotationParser
from pascalpatch.config import PascalPatchConfig
from pascalpatch.errors import PascalPatchError
from pascalpatch.extract.patches import PatchExtractor
from pascalpatch.pipeline.orchestrator import PipelineOrchestrator, PipelineResult
from pascalpatch.utils.naming import OutputTemplate

console = Console(stderr=True)

logger = logging.getLogger("pascalpatch")


def _build_summary_panel(result: PipelineResult, template: OutputTemplate) -> Panel:
    """Build a summary panel for a finished run."""
    c = result.counters
    lines = [
        f"[bold]Annotations:[/bold] {c.parsed} of {c.discovered}",
        f"[bold]Objects:[/bold] {c.objects}",
        f"[bold]Patches written:[/bold] {c.written}",
        f"[bold]Output template:[/bold] {template.template}",
        f"[bold]Elapsed:[/bold] {result.elapsed_seconds:.1f}s",
    ]
    return Panel("\n".join(lines), title="Extraction Complete", border_style="green")


def _result_to_dict(result: PipelineResult, template: OutputTemplate) -> dict:
    c = result.counters
    return {
        "annotations": c.discovered,
        "processed": c.parsed,
        "objects": c.objects,
        "written": c.written,
        "output_template": template.template,
        "outputs": [str(p) for p in result.outputs],
        "elapsed_seconds": result.elapsed_seconds,
    }


def _error(message: str) -> int:
    console.print(f"error: {message}", style="red", markup=False, highlight=False, soft_wrap=True)
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="PASCAL Annotation Version 1.00 image patch extraction.",
        prog="python -m pascalpatch",
    )
    parser.add_argument(
        "listing", type=Path, nargs="?", default=None,
        help="Annotations list file, one annotation path per line (default: stdin)",
    )
    parser.add_argument(
        "--output", "-o", default=None,
        help="Output base file name, optionally with one %%1%% or %%d placeholder",
    )
    parser.add_argument("--config", type=Path, default=None, help="pascalpatch config YAML")
    parser.add_argument("--workers", type=int, default=None, help="Max records in flight")
    parser.add_argument("--json", action="store_true", help="Output JSON summary")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    if not args.json:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_time=True, show_path=False)],
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.listing is None:
        if args.output is None:
            return _error("you must provide the output base file name")
        output = args.output
        base_dir = Path.cwd()
    else:
        if not args.listing.is_file():
            return _error(f"{args.listing} not found")
        output = args.output or args.listing.stem
        base_dir = args.listing.parent

    config = PascalPatchConfig.from_yaml(args.config) if args.config else PascalPatchConfig.default()
    if args.workers is not None:
        if args.workers < 1:
            return _error(f"--workers must be at least 1, got {args.workers}")
        config.pipeline.max_tokens = args.workers

    try:
        template = OutputTemplate.parse(output, config.pipeline.output_extension)
    except PascalPatchError as e:
        return _error(str(e))
    template.directory.mkdir(parents=True, exist_ok=True)

    orchestrator = PipelineOrchestrator(
        parser=AnnotationParser(config.parser),
        extractor=PatchExtractor(config.extraction),
        config=config.pipeline,
        console=console,
        show_progress=not args.json,
    )

    try:
        stream = (
            open(args.listing, encoding="utf-8") if args.listing is not None
            else nullcontext(sys.stdin)
        )
        with stream as listing:
            result = orchestrator.run(listing, base_dir, template)
    except OSError as e:
        return _error(f"failed to open {args.listing}: {e}")
    except PascalPatchError as e:
        return _error(str(e))

    if args.json:
        print(json.dumps(_result_to_dict(result, template), indent=2))
        return 0

    if result.counters.written > 0:
        directory = template.directory
        logger.info(
            "wrote %d images to %s",
            result.counters.written,
            Path.cwd() if directory == Path(".") else directory,
        )
    console.print(_build_summary_panel(result, template))
    return 0


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    sys.exit(main())
