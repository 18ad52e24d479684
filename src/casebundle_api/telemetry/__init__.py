from casebundle_api.telemetry.composition_metrics import CompositionMetrics
from casebundle_api.telemetry.tracing import generate_trace_id

__all__ = ["CompositionMetrics", "generate_trace_id"]
