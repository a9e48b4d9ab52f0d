"""
config/alerts.py
────────────────
Alert types, severity levels, and ordering.
"""

from enum import Enum


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    QUALITY_LOW = "QUALITY_LOW"
    ANOMALY_DETECTED = "ANOMALY_DETECTED"
    THRESHOLD_EXCEEDED = "THRESHOLD_EXCEEDED"
    SENSOR_OFFLINE = "SENSOR_OFFLINE"


# Severity each alert type is raised with
ALERT_SEVERITY: dict[AlertType, AlertSeverity] = {
    AlertType.QUALITY_LOW: AlertSeverity.MEDIUM,
    AlertType.ANOMALY_DETECTED: AlertSeverity.HIGH,
    AlertType.THRESHOLD_EXCEEDED: AlertSeverity.HIGH,
    AlertType.SENSOR_OFFLINE: AlertSeverity.HIGH,
}
