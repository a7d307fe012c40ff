from .trace import DefaultTraceStyle, Trace, TraceStyle

__all__ = [
    "DefaultTraceStyle",
    "Trace",
    "TraceStyle",
]
