"""Task template catalog: the read-only set of executable task kinds.

The catalog starts with the built-in templates and may be extended once at
startup from a YAML file.  After construction it is never mutated; lookups of
unknown or inactive templates raise :class:`TemplateNotFound`.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Optional

from loguru import logger

from ..io_utils import _load_data_with_error
from .errors import TaskEngineError, TemplateNotFound
from .model import (
    ParameterValidation,
    TaskParameter,
    TaskParameterType,
    TaskTemplate,
    TaskType,
    _coerce_enum,
)


# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

DATA_ANALYSIS_TEMPLATE = TaskTemplate(
    id="template_data_analysis",
    name="Data analysis",
    description="Clean, transform and analyse a large dataset.",
    task_type=TaskType.DATA_PROCESSING,
    category="data processing",
    version="1.2.0",
    agent_types=("AI Assistant", "Data Processing"),
    parameters=(
        TaskParameter(id="data_source", name="Data source", required=True, default_value="",
                      description="Path or URL of the input data"),
        TaskParameter(id="output_format", name="Output format", type=TaskParameterType.ENUM,
                      required=True, default_value="json",
                      validation=ParameterValidation(enum=("json", "csv", "xml", "parquet"))),
        TaskParameter(id="batch_size", name="Batch size", type=TaskParameterType.NUMBER,
                      default_value=1000, validation=ParameterValidation(min=100, max=10000)),
        TaskParameter(id="enable_compression", name="Enable compression",
                      type=TaskParameterType.BOOLEAN, default_value=True),
    ),
    expected_output="Structured data and an analysis report",
    estimated_duration=300,
    max_retries=3,
    timeout=600,
    tags=("data analysis", "etl"),
)

CONTENT_GENERATION_TEMPLATE = TaskTemplate(
    id="template_content_generation",
    name="Content generation",
    description="Generate text content from a prompt.",
    task_type=TaskType.CONTENT_GENERATION,
    category="content",
    version="2.0.1",
    agent_types=("AI Assistant", "Content Generation"),
    parameters=(
        TaskParameter(id="prompt", name="Prompt", required=True, default_value=""),
        TaskParameter(id="content_type", name="Content type", type=TaskParameterType.ENUM,
                      required=True, default_value="article",
                      validation=ParameterValidation(enum=("article", "blog", "report", "summary", "translation"))),
        TaskParameter(id="max_length", name="Maximum length", type=TaskParameterType.NUMBER,
                      default_value=1000, validation=ParameterValidation(min=100, max=5000)),
        TaskParameter(id="style", name="Writing style", default_value="professional"),
    ),
    expected_output="Generated text content",
    estimated_duration=120,
    max_retries=2,
    timeout=300,
    tags=("ai", "content generation"),
)

TEXT_ANALYSIS_TEMPLATE = TaskTemplate(
    id="template_text_analysis",
    name="Text analysis",
    description="Sentiment, topic, keyword or entity analysis of a text.",
    task_type=TaskType.ANALYSIS,
    category="text processing",
    version="1.5.0",
    agent_types=("AI Assistant", "Analysis"),
    parameters=(
        TaskParameter(id="analysis_type", name="Analysis type", type=TaskParameterType.ENUM,
                      required=True, default_value="sentiment",
                      validation=ParameterValidation(enum=("sentiment", "topic", "keyword", "entity", "trend"))),
        TaskParameter(id="input_text", name="Input text", required=True, default_value=""),
        TaskParameter(id="language", name="Language", type=TaskParameterType.ENUM, required=True,
                      default_value="en",
                      validation=ParameterValidation(enum=("zh", "en", "ja", "ko", "fr", "de"))),
    ),
    expected_output="Text analysis report",
    estimated_duration=180,
    max_retries=3,
    timeout=360,
    tags=("text analysis", "nlp"),
)

SECURITY_SCAN_TEMPLATE = TaskTemplate(
    id="template_security_scan",
    name="Security scan",
    description="Scan a target for vulnerabilities and threats.",
    task_type=TaskType.SECURITY,
    category="security",
    version="3.0.0",
    agent_types=("AI Assistant", "Security"),
    parameters=(
        TaskParameter(id="target_url", name="Target URL", required=True,
                      validation=ParameterValidation(pattern=r"^https?://")),
        TaskParameter(id="scan_type", name="Scan type", type=TaskParameterType.ENUM, required=True,
                      default_value="full", validation=ParameterValidation(enum=("quick", "full", "deep"))),
    ),
    expected_output="Security scan report",
    estimated_duration=600,
    max_retries=1,
    timeout=1200,
    tags=("security", "scan"),
)

MONITORING_TEMPLATE = TaskTemplate(
    id="template_monitoring",
    name="System monitoring",
    description="Collect performance and health metrics.",
    task_type=TaskType.MONITORING,
    category="operations",
    version="1.8.0",
    agent_types=("AI Assistant", "Monitoring"),
    parameters=(
        TaskParameter(id="metrics", name="Metrics", type=TaskParameterType.ARRAY, required=True,
                      default_value=["cpu", "memory", "disk"]),
        TaskParameter(id="interval", name="Sampling interval", type=TaskParameterType.NUMBER,
                      required=True, default_value=60, validation=ParameterValidation(min=10, max=3600)),
    ),
    expected_output="Metric samples",
    estimated_duration=0,  # continuous
    max_retries=5,
    timeout=7200,
    tags=("monitoring", "operations"),
)

LAPTOP_PURCHASE_TEMPLATE = TaskTemplate(
    id="template_laptop_purchase",
    name="Laptop purchase advisor",
    description="Recommend laptops within a budget for a given usage profile.",
    task_type=TaskType.LAPTOP_PURCHASE,
    category="shopping",
    version="1.0.0",
    agent_types=("AI Assistant", "Shopping"),
    parameters=(
        TaskParameter(id="budget_min", name="Minimum budget", type=TaskParameterType.NUMBER,
                      default_value=3000, validation=ParameterValidation(min=0)),
        TaskParameter(id="budget_max", name="Maximum budget", type=TaskParameterType.NUMBER,
                      required=True, default_value=8000, validation=ParameterValidation(min=0)),
        TaskParameter(id="usage_type", name="Usage", type=TaskParameterType.ENUM, required=True,
                      default_value="office",
                      validation=ParameterValidation(
                          enum=("office", "programming", "design", "gaming", "student", "business"))),
        TaskParameter(id="brand_preference", name="Preferred brands", type=TaskParameterType.ARRAY,
                      default_value=[]),
        TaskParameter(id="performance_level", name="Performance level", type=TaskParameterType.ENUM,
                      default_value="medium",
                      validation=ParameterValidation(enum=("low", "medium", "high", "extreme"))),
    ),
    expected_output="Ranked laptop recommendations with buying advice",
    estimated_duration=60,
    max_retries=2,
    timeout=180,
    tags=("shopping", "recommendation"),
)

BUILTIN_TEMPLATES: tuple[TaskTemplate, ...] = (
    DATA_ANALYSIS_TEMPLATE,
    CONTENT_GENERATION_TEMPLATE,
    TEXT_ANALYSIS_TEMPLATE,
    SECURITY_SCAN_TEMPLATE,
    MONITORING_TEMPLATE,
    LAPTOP_PURCHASE_TEMPLATE,
)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class TemplateCatalogError(TaskEngineError):
    """The template YAML file could not be read or parsed."""


_TEMPLATE_FIELDS = {
    "name", "description", "task_type", "category", "version", "agent_types",
    "parameters", "expected_output", "estimated_duration", "max_retries",
    "timeout", "tags", "is_active",
}


class TemplateCatalog:
    """Read-only registry of task templates keyed by id."""

    def __init__(self, templates: Optional[Iterable[TaskTemplate]] = None) -> None:
        source = BUILTIN_TEMPLATES if templates is None else templates
        self._templates: dict[str, TaskTemplate] = {t.id: t for t in source}

    @classmethod
    def from_yaml(cls, path: Path, *, include_builtins: bool = True) -> "TemplateCatalog":
        base = BUILTIN_TEMPLATES if include_builtins else ()
        templates = {t.id: t for t in base}
        for entry in _read_yaml_entries(path):
            template = _template_from_entry(entry, templates.get(str(entry["id"])))
            templates[template.id] = template
        logger.info("Loaded template catalog from {} ({} templates)", path, len(templates))
        return cls(templates.values())

    # -- query ---------------------------------------------------------------

    def get(self, template_id: str) -> TaskTemplate:
        """Return the *active* template with *template_id*."""
        template = self._templates.get(template_id)
        if template is None or not template.is_active:
            raise TemplateNotFound(template_id)
        return template

    def has(self, template_id: str) -> bool:
        template = self._templates.get(template_id)
        return template is not None and template.is_active

    def list_templates(self, *, include_inactive: bool = False) -> list[TaskTemplate]:
        return [t for t in self._templates.values() if include_inactive or t.is_active]

    def by_type(self, task_type: TaskType | str) -> list[TaskTemplate]:
        wanted = task_type.value if isinstance(task_type, TaskType) else str(task_type)
        return [t for t in self.list_templates() if t.task_type.value == wanted]

    def __len__(self) -> int:
        return len(self._templates)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _read_yaml_entries(path: Path) -> list[dict[str, Any]]:
    """Read the ``templates`` list from *path*; entries without ``id`` are skipped."""
    if not path.exists():
        logger.debug("Template YAML file does not exist: {}", path)
        return []

    data, err = _load_data_with_error(path, {})
    if err:
        raise TemplateCatalogError(f"Cannot load templates: {err}")

    if not isinstance(data, dict) or not isinstance(data.get("templates"), list):
        logger.warning("Template YAML missing 'templates' list: {}", path)
        return []

    entries: list[dict[str, Any]] = []
    for entry in data["templates"]:
        if not isinstance(entry, dict) or "id" not in entry:
            logger.warning("Skipping template entry without 'id': {}", entry)
            continue
        entries.append(entry)
    return entries


def _template_from_entry(entry: dict[str, Any], existing: Optional[TaskTemplate]) -> TaskTemplate:
    """Create a template from a YAML dict, or merge it over *existing*.

    Unrecognised keys are placed in ``metadata``, over the entry's own
    ``metadata`` mapping.
    """
    overrides: dict[str, Any] = {}
    extra_metadata: dict[str, Any] = {}
    if isinstance(entry.get("metadata"), dict):
        extra_metadata.update(entry["metadata"])
    for key, value in entry.items():
        if key == "id" or (key == "metadata" and isinstance(value, dict)):
            continue
        if key in _TEMPLATE_FIELDS:
            overrides[key] = value
        else:
            extra_metadata[key] = value

    if "task_type" in overrides:
        overrides["task_type"] = _coerce_enum(TaskType, overrides["task_type"], TaskType.AUTOMATION)
    if "parameters" in overrides:
        overrides["parameters"] = tuple(
            TaskParameter.from_dict(p) for p in overrides["parameters"] or () if isinstance(p, dict) and "id" in p
        )
    for tuple_field in ("agent_types", "tags"):
        if tuple_field in overrides:
            overrides[tuple_field] = tuple(overrides[tuple_field] or ())
    for int_field in ("estimated_duration", "max_retries", "timeout"):
        if int_field in overrides:
            overrides[int_field] = int(overrides[int_field])

    if existing is not None:
        return replace(existing, metadata={**existing.metadata, **extra_metadata}, **overrides)

    overrides.setdefault("name", str(entry["id"]))
    overrides.setdefault("task_type", TaskType.AUTOMATION)
    return TaskTemplate(id=str(entry["id"]), metadata=extra_metadata, **overrides)
