"""
Monitoring and metrics API endpoints.
Provides visibility into service health, RMA activity and request performance.
"""

import json
import os
import time

from flask import Blueprint, Response, current_app, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from rmatrack.observability.metrics_collector import metrics_collector
from rmatrack.observability.structured_logger import app_logger

monitoring_bp = Blueprint('monitoring', __name__, url_prefix='/monitoring')


@monitoring_bp.route('/api/metrics')
def get_metrics():
    """
    API endpoint to fetch current metrics.
    Returns JSON with all collected metrics.
    """
    try:
        metrics = metrics_collector.get_business_metrics()
        return jsonify({
            'status': 'success',
            'data': metrics,
            'timestamp': time.time()
        })
    except Exception as e:
        app_logger.error(f"Error fetching metrics: {str(e)}")
        return jsonify({
            'status': 'error',
            'message': str(e)
        }), 500


@monitoring_bp.route('/api/metrics/performance')
def get_performance_metrics():
    """Get detailed performance metrics."""
    duration_stats = metrics_collector.get_histogram_stats('http_request_duration_seconds')

    return jsonify({
        'avg_response_time_ms': duration_stats.get('avg', 0) * 1000,
        'p50_response_time_ms': duration_stats.get('p50', 0) * 1000,
        'p95_response_time_ms': duration_stats.get('p95', 0) * 1000,
        'p99_response_time_ms': duration_stats.get('p99', 0) * 1000,
        'max_response_time_ms': duration_stats.get('max', 0) * 1000,
        'total_requests': duration_stats.get('count', 0)
    })


@monitoring_bp.route('/api/health')
def health_check():
    """
    Health check endpoint for container orchestration.
    Degraded (503) once errors exceed one per second over the last minute.
    """
    uptime = time.time() - metrics_collector.start_time
    error_rate = metrics_collector.get_rate('errors_total', window_seconds=60)
    is_healthy = error_rate < 1.0

    return jsonify({
        'status': 'healthy' if is_healthy else 'degraded',
        'uptime_seconds': uptime,
        'error_rate_per_second': error_rate,
        'timestamp': time.time()
    }), 200 if is_healthy else 503


@monitoring_bp.route('/metrics')
def prometheus_metrics():
    """Prometheus exposition format for scraping."""
    return Response(generate_latest(REGISTRY), content_type=CONTENT_TYPE_LATEST)


@monitoring_bp.route('/api/logs/recent')
def get_recent_logs():
    """Last 100 JSON log entries from the application log file."""
    log_path = os.path.join(current_app.config['LOG_DIR'], 'app.log')
    try:
        with open(log_path, 'r') as f:
            recent_lines = f.readlines()[-100:]
    except FileNotFoundError:
        return jsonify({
            'status': 'success',
            'logs': [],
            'count': 0,
            'message': 'No logs available yet'
        })

    logs = []
    for line in recent_lines:
        try:
            logs.append(json.loads(line.strip()))
        except ValueError:
            # Skip malformed lines
            continue
    return jsonify({
        'status': 'success',
        'logs': logs,
        'count': len(logs)
    })
