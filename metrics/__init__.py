"""
Métricas Prometheus da camada de vídeo da consulta
"""

from metrics.prometheus_metrics import (
    # Join
    JOIN_ATTEMPTS,
    JOIN_FAILURES,
    JOIN_DURATION,
    DUPLICATE_JOINS_IGNORED,
    STALE_COMPLETIONS_DROPPED,
    # Sessão
    ACTIVE_SESSIONS,
    SESSION_DURATION,
    TEARDOWN_ERRORS,
    REMOTE_STREAM_EVENTS,
    # Credencial / dispatch
    TOKEN_FETCH_FAILURES,
    TOKEN_FETCH_LATENCY,
    UNSUPPORTED_PROVIDER,
    # Helpers
    start_metrics_server,
    track_join_attempt,
    track_join_success,
    track_join_failure,
    track_session_end,
    track_duplicate_join,
    track_stale_completion,
    track_teardown_error,
    track_remote_stream,
    track_token_fetch_failure,
    track_token_fetch_latency,
    track_unsupported_provider,
)

__all__ = [
    'JOIN_ATTEMPTS',
    'JOIN_FAILURES',
    'JOIN_DURATION',
    'DUPLICATE_JOINS_IGNORED',
    'STALE_COMPLETIONS_DROPPED',
    'ACTIVE_SESSIONS',
    'SESSION_DURATION',
    'TEARDOWN_ERRORS',
    'REMOTE_STREAM_EVENTS',
    'TOKEN_FETCH_FAILURES',
    'TOKEN_FETCH_LATENCY',
    'UNSUPPORTED_PROVIDER',
    # Helpers
    'start_metrics_server',
    'track_join_attempt',
    'track_join_success',
    'track_join_failure',
    'track_session_end',
    'track_duplicate_join',
    'track_stale_completion',
    'track_teardown_error',
    'track_remote_stream',
    'track_token_fetch_failure',
    'track_token_fetch_latency',
    'track_unsupported_provider',
]
