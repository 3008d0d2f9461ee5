"""
Prometheus metrics for the sweep service
"""

from prometheus_client import Counter, Gauge, Histogram, Info

service_info = Info('sweeper_service', 'TRON sweeper service information')
uptime_seconds = Gauge('sweeper_uptime_seconds', 'Service uptime in seconds')

sweep_results_total = Counter(
    'sweeper_sweep_results_total', 'Per-address sweep outcomes', ['result']
)
swept_amount_trx_total = Counter('sweeper_swept_amount_trx_total', 'Total TRX swept to receiving addresses')
sweep_cycle_duration = Histogram('sweeper_cycle_duration_seconds', 'Duration of a full sweep cycle')
last_cycle_time = Gauge('sweeper_last_cycle_time_seconds', 'Timestamp of the last completed sweep cycle')

pending_multisign_count = Gauge('sweeper_pending_multisign', 'Broadcast multi-sign transactions awaiting confirmation')
credential_rotations_total = Counter('sweeper_credential_rotations_total', 'API key rotations', ['reason'])
credential_index = Gauge('sweeper_credential_index', 'Index of the API key currently in use')
heartbeat_watchers = Gauge('sweeper_heartbeat_watchers', 'Watchers connected to the heartbeat channel')

health_check_status = Gauge('sweeper_health_check_status', 'Health check status by component', ['component'])
