"""
Validação de configuração com Pydantic.

Valida todas as configurações no startup e falha com mensagem clara
se alguma configuração for inválida.
"""

import logging
from typing import List

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger("consult-video.config-validation")

VALID_PROVIDERS = ["agora", "zegocloud"]
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ApiSettings(BaseModel):
    """Validação das configurações da API do backend."""
    base_url: str
    timeout: float

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url deve começar com http:// ou https://, recebeu: '{v}'")
        return v

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0 or v > 120:
            raise ValueError(f"timeout deve estar entre 0 e 120 segundos, recebeu: {v}")
        return v


class VideoSettings(BaseModel):
    """Validação das configurações da sessão de vídeo."""
    local_mount_id: str
    remote_mount_id: str
    join_timeout: float
    teardown_grace: float
    agora_sdk_module: str
    zego_sdk_module: str
    agora_mode: str
    agora_codec: str
    zego_server_url: str
    enabled_providers: List[str]

    @field_validator('local_mount_id', 'remote_mount_id', 'agora_sdk_module', 'zego_sdk_module')
    @classmethod
    def validate_not_empty(cls, v):
        if not v.strip():
            raise ValueError("não pode ser vazio")
        return v

    @field_validator('join_timeout')
    @classmethod
    def validate_join_timeout(cls, v):
        if v < 0 or v > 300:
            raise ValueError(f"join_timeout deve estar entre 0 e 300 segundos (0 = desabilitado), recebeu: {v}")
        return v

    @field_validator('teardown_grace')
    @classmethod
    def validate_teardown_grace(cls, v):
        if v < 0 or v > 60:
            raise ValueError(f"teardown_grace deve estar entre 0 e 60 segundos, recebeu: {v}")
        return v

    @field_validator('agora_mode')
    @classmethod
    def validate_agora_mode(cls, v):
        valid = ['rtc', 'live']
        if v not in valid:
            raise ValueError(f"agora_mode deve ser um de {valid}, recebeu: '{v}'")
        return v

    @field_validator('agora_codec')
    @classmethod
    def validate_agora_codec(cls, v):
        valid = ['vp8', 'vp9', 'h264', 'av1']
        if v not in valid:
            raise ValueError(f"agora_codec deve ser um de {valid}, recebeu: '{v}'")
        return v

    @field_validator('zego_server_url')
    @classmethod
    def validate_zego_server(cls, v):
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"zego_server_url deve ser uma URL ws:// ou wss://, recebeu: '{v}'")
        return v

    @field_validator('enabled_providers')
    @classmethod
    def validate_enabled_providers(cls, v):
        if not v:
            raise ValueError("pelo menos um provedor deve estar habilitado")
        unknown = [p for p in v if p not in VALID_PROVIDERS]
        if unknown:
            raise ValueError(f"enabled_providers deve estar em {VALID_PROVIDERS}, recebeu: {unknown}")
        return v


class StatusPollSettings(BaseModel):
    enabled: bool
    interval: float

    @field_validator('interval')
    @classmethod
    def validate_interval(cls, v):
        if v < 1 or v > 300:
            raise ValueError(f"interval deve estar entre 1 e 300 segundos, recebeu: {v}")
        return v


class LogSettings(BaseModel):
    level: str

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        if v.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"level deve ser um de {VALID_LOG_LEVELS}, recebeu: '{v}'")
        return v.upper()


class MetricsSettings(BaseModel):
    port: int
    enabled: bool

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if v < 1 or v > 65535:
            raise ValueError(f"port deve estar entre 1 e 65535, recebeu: {v}")
        return v


def validate_config():
    """Valida todos os blocos de configuração no startup.

    Levanta ValueError listando todos os problemas encontrados.
    Retorna True se tudo estiver válido.
    """
    from config import (
        API_CONFIG, VIDEO_CONFIG, STATUS_POLL_CONFIG, LOG_CONFIG, METRICS_CONFIG,
    )

    errors = []

    try:
        ApiSettings(
            base_url=API_CONFIG["base_url"],
            timeout=API_CONFIG["timeout"],
        )
    except (ValidationError, KeyError) as e:
        errors.append(f"[API] {e}")

    try:
        VideoSettings(**{key: VIDEO_CONFIG[key] for key in VideoSettings.model_fields})
    except (ValidationError, KeyError) as e:
        errors.append(f"[Video] {e}")

    try:
        StatusPollSettings(
            enabled=STATUS_POLL_CONFIG["enabled"],
            interval=STATUS_POLL_CONFIG["interval"],
        )
    except (ValidationError, KeyError) as e:
        errors.append(f"[StatusPoll] {e}")

    try:
        LogSettings(level=LOG_CONFIG["level"])
    except (ValidationError, KeyError) as e:
        errors.append(f"[Log] {e}")

    try:
        MetricsSettings(
            port=METRICS_CONFIG["port"],
            enabled=METRICS_CONFIG["enabled"],
        )
    except (ValidationError, KeyError) as e:
        errors.append(f"[Metrics] {e}")

    if errors:
        msg = "Erros de configuração encontrados:\n" + "\n".join(f"  {e}" for e in errors)
        logger.error(msg)
        raise ValueError(msg)

    logger.info("Todas as configurações validadas")
    return True
