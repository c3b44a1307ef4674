import os
import logging
from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

METRICS_PORT = int(os.getenv('METRICS_PORT', '8001'))

FRAGMENTS_TOTAL = Counter(
    'storyhub_fragments_total',
    'Chunked story fragments handled, by outcome',
    ['outcome'],
)
FRAGMENT_SECONDS = Histogram(
    'storyhub_fragment_seconds',
    'Time spent applying one story fragment, retries included',
)
TRANSACTION_RETRIES_TOTAL = Counter(
    'storyhub_transaction_retries_total',
    'Story transactions retried after a conflict or lock timeout',
    ['reason'],
)
MEDIA_CLEANUP_FAILURES_TOTAL = Counter(
    'storyhub_media_cleanup_failures_total',
    'Superseded media objects that could not be deleted',
)


def init_metrics(port: int = METRICS_PORT):
    """Initialize Prometheus metrics server"""
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')
