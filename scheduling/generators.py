"""
Pattern generator boundary.

A pattern generator is any callable that takes a GenerationConfig and
returns a loosely-typed sequence of session mappings covering one
representative week. The hosted-model client that does this lives outside
the project and is plugged in with settings.SCHEDULING['PATTERN_GENERATOR'].

Nothing the generator returns is trusted: parse_weekly_pattern coerces every
entry into a SessionTemplate or fails the whole generation.
"""

import logging
from typing import Any, Callable, List, Mapping, Sequence

from django.conf import settings
from django.utils.module_loading import import_string

from .exceptions import GenerationFailed
from .models import SessionTemplate
from .serializers import TemplateSessionSerializer
from .types import GenerationConfig


logger = logging.getLogger(__name__)

PatternGenerator = Callable[[GenerationConfig], Sequence[Mapping[str, Any]]]


def get_pattern_generator() -> PatternGenerator:
    """
    Load the configured pattern generator.

    Raises:
        GenerationFailed: If none is configured or it cannot be imported
    """
    path = getattr(settings, 'SCHEDULING', {}).get('PATTERN_GENERATOR')
    if not path:
        raise GenerationFailed(
            "No pattern generator is configured (SCHEDULING['PATTERN_GENERATOR'])"
        )

    try:
        return import_string(path)
    except ImportError as exc:
        raise GenerationFailed(f"Pattern generator {path!r} could not be loaded: {exc}") from exc


def parse_weekly_pattern(raw: Any) -> List[SessionTemplate]:
    """
    Coerce a generator's output into session templates.

    Args:
        raw: Whatever the generator returned

    Returns:
        One SessionTemplate per entry, in the generator's order

    Raises:
        GenerationFailed: If the payload is not a non-empty list or any
            entry is missing required fields
    """
    if not isinstance(raw, (list, tuple)):
        raise GenerationFailed(
            f"Pattern generator returned {type(raw).__name__}, expected a list of sessions"
        )
    if not raw:
        raise GenerationFailed("Pattern generator returned an empty weekly pattern")

    serializer = TemplateSessionSerializer(data=list(raw), many=True)
    if not serializer.is_valid():
        errors = [
            {'index': index, 'errors': entry_errors}
            for index, entry_errors in _indexed_errors(serializer.errors)
            if entry_errors
        ]
        logger.warning("Rejected generated pattern, %d invalid entries: %s", len(errors), errors)
        raise GenerationFailed(
            f"{len(errors)} of {len(raw)} generated session(s) are invalid",
            errors,
        )

    templates = serializer.save()
    logger.info("Parsed weekly pattern of %d session template(s)", len(templates))
    return templates


def _indexed_errors(errors):
    # Older DRF releases return one entry per item; newer ones a dict keyed by index.
    if isinstance(errors, Mapping):
        return sorted(errors.items())
    return enumerate(errors)
