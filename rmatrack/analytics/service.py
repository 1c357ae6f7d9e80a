"""
Analytics Service

Loads RMA cases and part comments from the database and shapes the overdue,
parts, SLA and site reports.
"""

from __future__ import annotations
import sqlite3
from datetime import datetime
from functools import partial
from typing import Any, Dict, Optional

from rmatrack.analytics.breakdown import resolve_breakdown
from rmatrack.analytics.overdue import classify_overdue, parse_days_filter, summarize
from rmatrack.analytics.parts import aggregate_parts, sort_parts, summarize_parts
from rmatrack.analytics.recommendations import DEFAULT_BREACH_RATE_THRESHOLD, generate_recommendations
from rmatrack.analytics.sites import site_analytics
from rmatrack.analytics.sla import compute_sla
from rmatrack.observability.metrics_collector import metrics_collector
from rmatrack.observability.structured_logger import app_logger
from rmatrack.records import utcnow
from rmatrack.rma.manager import RMAManager
from rmatrack.rma.part_comments import PartCommentManager
from rmatrack.sites.manager import SiteManager
from rmatrack.symptoms import SymptomClassifier, default_classifier


class AnalyticsService:
    def __init__(self, conn: sqlite3.Connection,
                 breach_rate_threshold: float = DEFAULT_BREACH_RATE_THRESHOLD,
                 classifier: SymptomClassifier = default_classifier):
        self.conn = conn
        self.rmas = RMAManager(conn)
        self.part_comments = PartCommentManager(conn)
        self.sites = SiteManager(conn)
        self.breach_rate_threshold = breach_rate_threshold
        self.classifier = classifier

    def overdue_report(self, days: Any = 30, status: str = "all", include_future: bool = False,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
        days_filter = parse_days_filter(days)
        now = now or utcnow()
        records = self.rmas.all_rmas()

        overdue = classify_overdue(records, now=now, days_filter=days_filter,
                                   status=status, include_future=include_future)
        for item in overdue:
            item["displayReplacedPartName"] = self.classifier.resolve_replaced_part_name(
                item.get("replacedPartName"), item.get("defectivePartName")
            )

        summary = summarize(overdue, now, days_filter)
        breakdown = resolve_breakdown({"overdueRMAs": overdue})
        sla = compute_sla(records, now=now)
        recommendations = generate_recommendations(summary, breakdown, sla, self.breach_rate_threshold)

        metrics_collector.record_analytics_run("overdue")
        metrics_collector.set_gauge("overdue_rmas", summary["totalOverdue"])
        metrics_collector.set_gauge("sla_breach_rate", sla["breachRate"])
        app_logger.info(
            "Overdue analysis complete",
            days=days_filter, status=status, total=summary["totalOverdue"],
            critical=summary["criticalCount"], urgent=summary["urgentCount"]
        )

        return {
            "summary": summary,
            "breakdown": breakdown,
            "overdueRMAs": overdue,
            "recommendations": recommendations,
            "sla": sla,
        }

    def parts_report(self, sort_by: Optional[str] = None, now: Optional[datetime] = None,
                     include_internal: bool = True) -> Dict[str, Any]:
        now = now or utcnow()
        lookup = partial(self.part_comments.latest_comment, include_internal=include_internal)
        parts = aggregate_parts(self.rmas.all_rmas(), now=now, comment_lookup=lookup)
        parts = sort_parts(parts, sort_by)
        metrics_collector.record_analytics_run("parts")
        app_logger.info("Parts analysis complete", parts=len(parts), sort_by=sort_by or "priority")
        return {
            "summary": summarize_parts(parts),
            "parts": parts,
            "lastUpdated": now.isoformat(),
        }

    def sla_report(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        metrics_collector.record_analytics_run("sla")
        return compute_sla(self.rmas.all_rmas(), now=now)

    def sites_report(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        metrics_collector.record_analytics_run("sites")
        return site_analytics(self.sites.list_sites(), self.rmas.all_rmas(), now=now)
