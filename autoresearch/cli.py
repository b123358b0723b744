"""AutoResearch command line interface."""

import argparse
import asyncio
import sys
from typing import Callable, List, Optional

from .config import get_settings
from .engine import ResearchEngine
from .errors import AutoResearchError
from .models import OutputFormat, ResearchDepth, ResearchTopic

RULE = "=" * 50


def prompt_topic(settings, ask: Callable[[str], str] = input) -> Optional[ResearchTopic]:
    """Ask for the research parameters interactively; ``None`` if the topic is empty."""

    print("\nAutoResearch - Interactive Mode\n")
    print(RULE)

    topic = ask("\nEnter research topic: ").strip()
    if not topic:
        print("Topic cannot be empty")
        return None

    depth_input = ask("\nResearch depth (basic/intermediate/comprehensive) [intermediate]: ").strip().lower()
    try:
        depth = ResearchDepth(depth_input or "intermediate")
    except ValueError:
        print(f"Unknown depth {depth_input!r}, using intermediate")
        depth = ResearchDepth.INTERMEDIATE

    default_sources = min(depth.source_budget, settings.max_search_results)
    max_sources_input = ask(f"\nMaximum sources (1-50) [{default_sources}]: ").strip()
    try:
        max_sources = min(max(int(max_sources_input), 1), 50)
    except ValueError:
        max_sources = None  # depth default

    viz_input = ask("\nInclude data visualizations? (y/n) [n]: ").strip().lower()

    return ResearchTopic(
        topic=topic,
        depth=depth,
        max_sources=max_sources,
        include_visualization=viz_input == "y",
    )


def print_progress(stage: str, detail: str) -> None:
    print(f"[~] {stage}: {detail}")


async def run_research(topic: ResearchTopic, engine: Optional[ResearchEngine] = None) -> List[str]:
    engine = engine or ResearchEngine()

    print(f"\n{RULE}\nStarting research on: {topic.topic}\n")
    paths = await engine.research_with_timeout(topic, progress_callback=print_progress)

    print(f"\n{RULE}\n\nResearch Complete!\n")
    print("Generated Reports:")
    for idx, path in enumerate(paths, 1):
        print(f"   {idx}. {path}")
    print(f"\n{RULE}\n")
    return paths


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autoresearch",
        description="Generate a cited research report on a topic"
    )
    parser.add_argument("topic", nargs="*", help="Research topic (omit for interactive mode)")
    parser.add_argument(
        "--depth", "-d",
        choices=[d.value for d in ResearchDepth],
        default=ResearchDepth.INTERMEDIATE.value,
        help="Research depth (default: intermediate)"
    )
    parser.add_argument("--max-sources", "-n", type=int, help="Maximum number of sources (1-50)")
    parser.add_argument("--visualize", action="store_true", help="Include a source overview table")
    parser.add_argument(
        "--format", "-f",
        action="append",
        choices=[f.value for f in OutputFormat],
        dest="formats",
        help="Output format, may be repeated (default: from REPORT_FORMATS)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    print("\nConfiguration:")
    print(f"   Output Directory: {settings.output_dir}")
    print(f"   Report Formats: {', '.join(args.formats or settings.report_format_list)}")
    print(f"   Max Search Results: {settings.max_search_results}\n")

    try:
        if args.topic:
            topic = ResearchTopic(
                topic=" ".join(args.topic),
                depth=ResearchDepth(args.depth),
                max_sources=min(max(args.max_sources, 1), 50) if args.max_sources else None,
                include_visualization=args.visualize,
                output_formats={OutputFormat(f) for f in args.formats} if args.formats else None,
            )
        else:
            topic = prompt_topic(settings)
            if topic is None:
                return 1

        asyncio.run(run_research(topic))
    except AutoResearchError as e:
        print(f"\n[!] Research failed: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[!] Interrupted", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
