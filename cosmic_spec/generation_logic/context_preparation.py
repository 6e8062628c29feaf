import json
import logging
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError

from cosmic_spec.core.exceptions import ConfigurationError
from cosmic_spec.models.spec_models import DataMovementRow
from cosmic_spec.models.spec_models import FunctionalDataset
from cosmic_spec.models.spec_models import RequirementDoc
from cosmic_spec.models.spec_models import TemplateAnalysis

__all__ = [
    "load_functional_dataset",
    "load_template_analysis",
    "load_requirement_doc",
    "dataset_from_rows",
]

logger = logging.getLogger(__name__)

_rows_adapter = TypeAdapter(list[DataMovementRow])


def _read_json(path: str | Path, request_id: str) -> Any:
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as e:
        logger.error("[%s] Input file not found: %s", request_id, path)
        raise ConfigurationError(f"Input file not found: {path}") from e
    except json.JSONDecodeError as e:
        logger.error("[%s] Input file is not valid JSON: %s (%s)", request_id, path, e.msg)
        raise ConfigurationError(f"Input file is not valid JSON: {path}") from e


def dataset_from_rows(rows: list[DataMovementRow]) -> FunctionalDataset:
    """Group flat rows by their functional process, keeping first-appearance order."""
    dataset: FunctionalDataset = {}
    for row in rows:
        if not row.functional_process:
            raise ConfigurationError("Every data movement row needs a functional process name.")
        dataset.setdefault(row.functional_process, []).append(row)
    return dataset


def load_functional_dataset(path: str | Path, request_id: str = "-") -> FunctionalDataset:
    """Load a COSMIC dataset.

    Accepts either a mapping ``{process name: [rows]}`` or a flat list of rows that
    carry their own ``functionalProcess`` field.
    """
    raw = _read_json(path, request_id)
    try:
        if isinstance(raw, dict):
            dataset = {str(name): _rows_adapter.validate_python(rows) for name, rows in raw.items()}
        elif isinstance(raw, list):
            dataset = dataset_from_rows(_rows_adapter.validate_python(raw))
        else:
            raise ConfigurationError(f"Unsupported dataset layout in {path}: {type(raw).__name__}")
    except ValidationError as e:
        logger.error("[%s] Invalid data movement rows in %s: %s", request_id, path, e)
        raise ConfigurationError(f"Invalid data movement rows in {path}") from e

    logger.info("[%s] Loaded %d functional processes from %s", request_id, len(dataset), path)
    return dataset


def load_template_analysis(path: str | Path, request_id: str = "-") -> TemplateAnalysis:
    raw = _read_json(path, request_id)
    try:
        analysis = TemplateAnalysis.model_validate(raw)
    except ValidationError as e:
        logger.error("[%s] Invalid template analysis in %s: %s", request_id, path, e)
        raise ConfigurationError(f"Invalid template analysis in {path}") from e
    logger.debug(
        "[%s] Template analysis loaded: %d chapters, %d chars of template text",
        request_id,
        len(analysis.all_chapters or []),
        len(analysis.original_template_text),
    )
    return analysis


def load_requirement_doc(path: str | Path, request_id: str = "-") -> RequirementDoc:
    raw = _read_json(path, request_id)
    try:
        return RequirementDoc.model_validate(raw)
    except ValidationError as e:
        logger.error("[%s] Invalid requirement document in %s: %s", request_id, path, e)
        raise ConfigurationError(f"Invalid requirement document in {path}") from e
