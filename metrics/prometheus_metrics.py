"""
Definições de métricas Prometheus para a camada de vídeo da consulta
"""

import time
import logging
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

logger = logging.getLogger("consult-video.metrics")

# =============================================================================
# MÉTRICAS DE JOIN
# =============================================================================

JOIN_ATTEMPTS = Counter(
    'consult_video_join_attempts_total',
    'Total de sequências de join iniciadas',
    ['provider']  # agora, zegocloud
)

JOIN_FAILURES = Counter(
    'consult_video_join_failures_total',
    'Total de sequências de join que terminaram em FAILED',
    ['provider', 'reason']  # PermissionDeniedError, DeviceBusyError, ...
)

JOIN_DURATION = Histogram(
    'consult_video_join_duration_seconds',
    'Tempo entre join() e CONNECTED',
    ['provider'],
    buckets=[0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 30.0]
)

DUPLICATE_JOINS_IGNORED = Counter(
    'consult_video_duplicate_joins_ignored_total',
    'Chamadas de join descartadas pela guarda de reentrância',
    ['provider']
)

STALE_COMPLETIONS_DROPPED = Counter(
    'consult_video_stale_completions_dropped_total',
    'Passos assíncronos que completaram obsoletos (após leave() ou remoção do remoto) e foram descartados',
    ['provider', 'step']  # load_sdk, create_client, join_room, acquire_media, publish, play, subscribe
)

# =============================================================================
# MÉTRICAS DE SESSÃO
# =============================================================================

ACTIVE_SESSIONS = Gauge(
    'consult_video_active_sessions',
    'Sessões em CONNECTED no momento',
    ['provider']
)

SESSION_DURATION = Histogram(
    'consult_video_session_duration_seconds',
    'Tempo conectado por sessão',
    ['provider'],
    buckets=[30, 60, 300, 600, 900, 1800, 3600]
)

TEARDOWN_ERRORS = Counter(
    'consult_video_teardown_errors_total',
    'Erros ao liberar uma sessão (nunca bloqueiam a liberação local)',
    ['provider', 'step']  # media, stop_play, leave, destroy
)

REMOTE_STREAM_EVENTS = Counter(
    'consult_video_remote_stream_events_total',
    'Eventos de attach/detach de mídia remota tratados',
    ['provider', 'event']  # attach, detach
)

# =============================================================================
# MÉTRICAS DE CREDENCIAL / DISPATCH
# =============================================================================

TOKEN_FETCH_FAILURES = Counter(
    'consult_video_token_fetch_failures_total',
    'Requisições de token de vídeo que falharam'
)

TOKEN_FETCH_LATENCY = Histogram(
    'consult_video_token_fetch_latency_seconds',
    'Latência do endpoint de token de vídeo',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0]
)

UNSUPPORTED_PROVIDER = Counter(
    'consult_video_unsupported_provider_total',
    'Credenciais com tag de provedor sem driver',
    ['provider']
)

# =============================================================================
# HELPERS
# =============================================================================

def start_metrics_server(port: int = 9091):
    """Inicia servidor HTTP para expor métricas"""
    try:
        start_http_server(port)
        logger.info(f"Servidor de métricas ouvindo na porta {port}")
    except Exception as e:
        logger.error(f"Falha ao iniciar servidor de métricas: {e}")


def track_join_attempt(provider: str):
    JOIN_ATTEMPTS.labels(provider=provider).inc()


def track_join_success(provider: str, duration_seconds: float):
    """Registra sessão que chegou a CONNECTED"""
    JOIN_DURATION.labels(provider=provider).observe(duration_seconds)
    ACTIVE_SESSIONS.labels(provider=provider).inc()


def track_join_failure(provider: str, reason: str):
    JOIN_FAILURES.labels(provider=provider, reason=reason).inc()


def track_session_end(provider: str, duration_seconds: float):
    """Registra fim de sessão que tinha chegado a CONNECTED"""
    ACTIVE_SESSIONS.labels(provider=provider).dec()
    SESSION_DURATION.labels(provider=provider).observe(duration_seconds)


def track_duplicate_join(provider: str):
    DUPLICATE_JOINS_IGNORED.labels(provider=provider).inc()


def track_stale_completion(provider: str, step: str):
    STALE_COMPLETIONS_DROPPED.labels(provider=provider, step=step).inc()


def track_teardown_error(provider: str, step: str):
    TEARDOWN_ERRORS.labels(provider=provider, step=step).inc()


def track_remote_stream(provider: str, event: str):
    REMOTE_STREAM_EVENTS.labels(provider=provider, event=event).inc()


def track_token_fetch_failure():
    TOKEN_FETCH_FAILURES.inc()


def track_unsupported_provider(provider: str):
    UNSUPPORTED_PROVIDER.labels(provider=provider or "empty").inc()


@contextmanager
def track_token_fetch_latency():
    """Context manager para medir latência do endpoint de token"""
    start = time.perf_counter()
    try:
        yield
    finally:
        TOKEN_FETCH_LATENCY.observe(time.perf_counter() - start)
