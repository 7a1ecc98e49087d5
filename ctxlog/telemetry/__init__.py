from .error_tracking import ErrorReporter
from .metrics import LogMetrics
