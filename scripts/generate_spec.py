"""
Generates a requirement specification from a COSMIC dataset
and saves the Markdown document together with its quality report.

Usage:
    python scripts/generate_spec.py --dataset cosmic.json --template template.json --out requirement_spec.md
    python scripts/generate_spec.py --check-only requirement_spec.md --dataset cosmic.json
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import dotenv

from cosmic_spec.core.exceptions import PipelineError
from cosmic_spec.core.logging import setup_logging
from cosmic_spec.generation_logic import load_functional_dataset
from cosmic_spec.generation_logic import load_requirement_doc
from cosmic_spec.generation_logic import load_template_analysis
from cosmic_spec.models.spec_models import ProgressEvent
from cosmic_spec.models.spec_models import QualityReport
from cosmic_spec.services.classification_service import KeywordClassifier
from cosmic_spec.services.classification_service import SingleBucketClassifier
from cosmic_spec.services.llm import OpenAITextGenerator
from cosmic_spec.services.pipeline import PipelineService
from cosmic_spec.services.quality_check_service import QualityCheckService

# --- Config -----------------------------------------------------
dotenv.load_dotenv()

logger = logging.getLogger("cosmic_spec.scripts.generate_spec")


# --- Helpers ----------------------------------------------------
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="COSMIC -> requirement specification generator")
    parser.add_argument("--dataset", type=Path, help="COSMIC dataset JSON (mapping or flat list of rows)")
    parser.add_argument("--template", type=Path, help="Template analysis JSON")
    parser.add_argument("--requirement", type=Path, help="Requirement document JSON")
    parser.add_argument("--out", type=Path, default=Path("requirement_spec.md"), help="Output Markdown file")
    parser.add_argument("--report", type=Path, help="Quality report JSON (default: <out>.quality.json)")
    parser.add_argument(
        "--classifier",
        choices=("single", "keyword"),
        default="single",
        help="How functional processes are grouped into modules",
    )
    parser.add_argument("--check-only", type=Path, metavar="MARKDOWN", help="Only score an existing document")
    parser.add_argument("--no-llm", action="store_true", help="With --check-only: skip the model-based checks")
    parser.add_argument("--log-level", default=None, help="Override the log level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def print_progress(event: ProgressEvent) -> None:
    print(f"[{event.progress:5.1f}%] {event.message}")


def write_report(report: QualityReport, path: Path) -> None:
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    print(f"✓ Quality report saved to {path} (score {report.overall_score}/100)")


async def run(args: argparse.Namespace) -> int:
    dataset = load_functional_dataset(args.dataset) if args.dataset else {}
    template = load_template_analysis(args.template) if args.template else None

    if args.check_only:
        content = args.check_only.read_text(encoding="utf-8")
        text_generator = None if args.no_llm else OpenAITextGenerator()
        report = await QualityCheckService().check(content, template, dataset, text_generator)
        write_report(report, args.report or args.check_only.with_suffix(".quality.json"))
        return 0

    if not dataset:
        print("✘ --dataset is required for generation", file=sys.stderr)
        return 2

    requirement = load_requirement_doc(args.requirement) if args.requirement else None
    classifier = KeywordClassifier() if args.classifier == "keyword" else SingleBucketClassifier()
    result = await PipelineService(classifier=classifier).run(
        OpenAITextGenerator(),
        dataset,
        template,
        requirement,
        on_progress=print_progress,
    )

    args.out.write_text(result.content, encoding="utf-8")
    print(f"✓ Document saved to {args.out} ({len(result.content)} chars)")
    write_report(result.quality_report, args.report or args.out.with_suffix(".quality.json"))
    return 0


# --- Main -------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        return asyncio.run(run(args))
    except PipelineError as e:
        logger.error("Generation failed: %s", str(e))
        print(f"✘ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
