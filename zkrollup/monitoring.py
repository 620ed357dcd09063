# zkrollup/monitoring.py
import time
import socket
import threading
import logging
from socketserver import ThreadingMixIn
from wsgiref.simple_server import make_server, WSGIServer

import psutil
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the rollup."""
    allow_reuse_address = True
    daemon_threads = True


class Monitor:
    def __init__(self, rollup, host="127.0.0.1", port=9090):
        self.rollup = rollup
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        # Isolated registry so several rollups can live in one process
        self.registry = CollectorRegistry()

        self.operations = Counter('rollup_operations_total', 'Rollup operations by kind and outcome', ['operation', 'status'], registry=self.registry)
        self.batch_latency = Histogram('rollup_batch_latency_seconds', 'Latency of batch processing', registry=self.registry)
        self.batch_size = Histogram('rollup_batch_transactions', 'Transactions per accepted batch', buckets=(1, 2, 4, 8, 16, 32), registry=self.registry)
        self.total_accounts = Gauge('rollup_total_accounts', 'Number of registered accounts', registry=self.registry)
        self.current_batch = Gauge('rollup_current_batch', 'Id of the next batch', registry=self.registry)
        self.paused = Gauge('rollup_paused', '1 while the rollup is paused', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

    def start_server(self, max_retries: int = 5, retry_delay: float = 2):
        """Starts the Prometheus HTTP exporter in a daemon thread."""
        app = make_wsgi_app(self.registry)

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98 and attempt < max_retries - 1:  # Address already in use
                    logger.warning(f"Port {self.port} in use, retrying in {retry_delay}s (attempt {attempt+1}/{max_retries})...")
                    time.sleep(retry_delay)
                else:
                    logger.error(f"Failed to bind to port {self.port}: {e}")
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self):
        self.total_accounts.set(self.rollup.total_accounts)
        self.current_batch.set(self.rollup.current_batch)
        self.paused.set(1 if self.rollup.paused else 0)
        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def record_operation(self, operation: str, status: str):
        self.operations.labels(operation=operation, status=status).inc()

    def record_batch(self, tx_count: int, latency: float):
        self.batch_size.observe(tx_count)
        self.batch_latency.observe(latency)
