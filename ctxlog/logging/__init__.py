from .context import FIELDS_KEY, FieldStore, LogContext, LogField, context_fields, with_field, with_value
from .fields import Field, FieldRegistry, call_site_fields
from .logger import ContextLogger, get_logger, parse_level
from .merge import MergeResult, merge_fields
from .trace import REQUEST_ID_HEADER, new_trace_id
