from pricestream.alerts.evaluator import (
    ALERT_EVENT_SCHEMA,
    ALERT_TRIGGERED_EVENT_ID,
    AlertEvaluator,
    alert_id_bytes32,
)

__all__ = ["ALERT_EVENT_SCHEMA", "ALERT_TRIGGERED_EVENT_ID", "AlertEvaluator", "alert_id_bytes32"]
