"""Form schema editing, rule evaluation and JSON normalisation."""

from .conditions import field_state, should_disable, should_require, should_show  # noqa: F401
from .editor import EditorSession, EditorState  # noqa: F401
from .history import HistoryManager  # noqa: F401
from .models import FieldType, FormSchema, SchemaFormatError  # noqa: F401
from .normalizer import NormalizationError, NormalizationResult, normalize  # noqa: F401
from .slugs import slugify, unique_slug  # noqa: F401
