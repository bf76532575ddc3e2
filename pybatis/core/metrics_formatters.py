from datetime import datetime, timezone
from typing import Any, Dict

from pybatis.core.instrumentation import DURATION_METRIC, EXECUTIONS_METRIC
from pybatis.core.metrics_core import MetricsStorage


def format_json(storage: MetricsStorage) -> Dict[str, Any]:
    """
    Summarize statement metrics as nested JSON.

    {
        "enabled": true,
        "timestamp": "...",
        "statements": {
            "UserMapper.find_by_id": {
                "executions": 3,
                "failures": {"NotFoundException": 1},
                "avg_duration_ms": 0.42
            }
        }
    }
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    if not storage.enabled:
        return {"enabled": False, "timestamp": timestamp}

    executions = storage.counters.get(EXECUTIONS_METRIC)
    durations = storage.histograms.get(DURATION_METRIC)

    statements: Dict[str, Dict[str, Any]] = {}
    if executions is not None:
        for sample in executions.samples():
            name = sample.labels.get("statement", "unknown")
            status = sample.labels.get("status", "success")
            entry = statements.setdefault(
                name, {"executions": 0, "failures": {}, "avg_duration_ms": None}
            )
            entry["executions"] += int(sample.value)
            if status != "success":
                entry["failures"][status] = int(sample.value)

    if durations is not None:
        for name, entry in statements.items():
            count = durations.get_count({"statement": name})
            if count:
                total = durations.get_sum({"statement": name})
                entry["avg_duration_ms"] = round(total / count * 1000, 3)

    return {
        "enabled": True,
        "timestamp": timestamp,
        "statements": dict(sorted(statements.items())),
    }


def format_prometheus(storage: MetricsStorage) -> str:
    """Render every metric in the Prometheus text exposition format."""
    if not storage.enabled:
        return "# Metrics disabled\n"

    lines = []

    for name, counter in storage.counters.items():
        lines.append(f"# HELP {name} {counter.help_text}")
        lines.append(f"# TYPE {name} counter")
        for sample in counter.samples():
            lines.append(f"{name}{_format_labels(sample.labels)} {sample.value}")

    for name, gauge in storage.gauges.items():
        lines.append(f"# HELP {name} {gauge.help_text}")
        lines.append(f"# TYPE {name} gauge")
        for sample in gauge.samples():
            lines.append(f"{name}{_format_labels(sample.labels)} {sample.value}")

    for name, histogram in storage.histograms.items():
        lines.append(f"# HELP {name} {histogram.help_text}")
        lines.append(f"# TYPE {name} histogram")
        for labels, total_sum, total_count, buckets in histogram.samples():
            for upper_bound, count in buckets:
                bucket_labels = _format_labels({**labels, "le": str(upper_bound)})
                lines.append(f"{name}_bucket{bucket_labels} {count}")
            inf_labels = _format_labels({**labels, "le": "+Inf"})
            lines.append(f"{name}_bucket{inf_labels} {total_count}")
            lines.append(f"{name}_sum{_format_labels(labels)} {total_sum}")
            lines.append(f"{name}_count{_format_labels(labels)} {total_count}")

    return "\n".join(lines) + "\n"


def _format_labels(labels: Dict[str, str]) -> str:
    if not labels:
        return ""
    pairs = [f'{key}="{value}"' for key, value in sorted(labels.items())]
    return "{" + ",".join(pairs) + "}"
