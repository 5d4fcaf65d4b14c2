from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable

from .models import DashboardStats, ServiceOrder
from .registry import StatusRegistry

logger = logging.getLogger(__name__)

UNASSIGNED = "Não Atribuído"


def _delivered_by(order: ServiceOrder) -> str | None:
    for entry in reversed(order.logs):
        if entry.to_status == order.status:
            return entry.responsible or UNASSIGNED
    return None


def compute_dashboard_stats(orders: Iterable[ServiceOrder], registry: StatusRegistry) -> DashboardStats:
    """Aggregate totals per status, per creating analyst and per delivering user."""

    status_counts = {status.id: 0 for status in registry.all()}
    created_by: Counter[str] = Counter()
    delivered_by: Counter[str] = Counter()
    final_ids = registry.final_ids()
    total = 0

    for order in orders:
        total += 1
        if order.status not in status_counts:
            logger.warning("Order %s holds unknown status %s", order.order_number, order.status)
        status_counts[order.status] = status_counts.get(order.status, 0) + 1
        created_by[order.analyst or UNASSIGNED] += 1
        if order.status in final_ids:
            responsible = _delivered_by(order)
            if responsible is not None:
                delivered_by[responsible] += 1

    return DashboardStats(
        total_orders=total,
        status_counts=status_counts,
        created_by=dict(created_by),
        delivered_by=dict(delivered_by),
    )
