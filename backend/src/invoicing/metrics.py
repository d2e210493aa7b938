"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Invoice metrics
invoices_created_total = Counter(
    "invoices_created_total",
    "Total number of invoices created",
    labelnames=["invoice_type", "source"],  # source: manual, payroll, schedule
)

invoice_transitions_total = Counter(
    "invoice_transitions_total",
    "Total invoice status transitions",
    labelnames=["invoice_type", "action"],
)

invoice_side_effect_failures_total = Counter(
    "invoice_side_effect_failures_total",
    "Best-effort side effects (mail, bill) that failed after a transition",
    labelnames=["effect"],
)

invoices_marked_overdue_total = Counter(
    "invoices_marked_overdue_total",
    "Total invoices moved to OVERDUE by the sweep",
)

# Schedule metrics
schedule_generations_total = Counter(
    "schedule_generations_total",
    "Scheduled invoice generation attempts",
    labelnames=["result"],  # result: generated, skipped, failed
)

# Bill metrics
bills_paid_total = Counter(
    "bills_paid_total",
    "Total bills marked as paid",
)
