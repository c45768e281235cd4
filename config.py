"""
Configuração da camada de sessão de vídeo da consulta.

Todas as configurações vêm de variáveis de ambiente (um arquivo .env local
também é lido). Veja .env.example para as variáveis documentadas.
"""

import os
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _parse_bool(value: str, default: bool = False) -> bool:
    """Converte string para booleano"""
    if not value:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_list(value: str, default: List[str]) -> List[str]:
    """Converte lista separada por vírgula"""
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


# =============================================================================
# API DO BACKEND
# =============================================================================

API_CONFIG = {
    # URL base do backend de consultas (onde fica o endpoint de token)
    "base_url": os.getenv("API_BASE_URL", "http://localhost:4000/api/v1"),

    # Timeout das requisições (segundos)
    "timeout": float(os.getenv("API_TIMEOUT", "15.0")),

    # Bearer token enviado em toda requisição (vazio = auth por cookie/sessão no upstream)
    "auth_token": os.getenv("API_AUTH_TOKEN", ""),
}


# =============================================================================
# SESSÃO DE VÍDEO
# =============================================================================

VIDEO_CONFIG = {
    # Ids dos pontos de montagem do preview local e do stream remoto
    "local_mount_id": os.getenv("VIDEO_LOCAL_MOUNT_ID", "local-video"),
    "remote_mount_id": os.getenv("VIDEO_REMOTE_MOUNT_ID", "remote-video"),

    # Limite do lado do cliente para o join na sala (segundos, 0 = só o timeout do provedor)
    "join_timeout": float(os.getenv("VIDEO_JOIN_TIMEOUT", "30.0")),

    # Quanto leave() espera um join em andamento antes de cancelá-lo (segundos)
    "teardown_grace": float(os.getenv("VIDEO_TEARDOWN_GRACE", "5.0")),

    # Caminhos de import dos SDKs ("modulo" ou "modulo:atributo")
    "agora_sdk_module": os.getenv("AGORA_SDK_MODULE", "providers.mock_sdk:AGORA"),
    "zego_sdk_module": os.getenv("ZEGO_SDK_MODULE", "providers.mock_sdk:ZEGO"),

    # Opções do client Agora
    "agora_mode": os.getenv("AGORA_MODE", "rtc"),
    "agora_codec": os.getenv("AGORA_CODEC", "vp8"),

    # Servidor de sinalização Zego
    "zego_server_url": os.getenv("ZEGO_SERVER_URL", "wss://webliveroom-api.zegocloud.com/ws"),

    # Provedores aceitos vindos do endpoint de token
    "enabled_providers": _parse_list(os.getenv("VIDEO_ENABLED_PROVIDERS", ""), ["agora", "zegocloud"]),
}


# =============================================================================
# POLLING DE STATUS DA CONSULTA
# =============================================================================

STATUS_POLL_CONFIG = {
    # Habilita o poller de presença dos participantes
    "enabled": _parse_bool(os.getenv("STATUS_POLL_ENABLED", "true"), True),

    # Intervalo do polling (segundos)
    "interval": float(os.getenv("STATUS_POLL_INTERVAL", "5.0")),
}


# =============================================================================
# LOGGING
# =============================================================================

LOG_CONFIG = {
    # Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    "level": os.getenv("LOG_LEVEL", "INFO"),
}


# =============================================================================
# MÉTRICAS PROMETHEUS
# =============================================================================

METRICS_CONFIG = {
    # Porta do servidor HTTP que expõe as métricas Prometheus
    "port": int(os.getenv("METRICS_PORT", "9091")),

    # Habilita o servidor de métricas
    "enabled": _parse_bool(os.getenv("METRICS_ENABLED", "true"), True),
}
