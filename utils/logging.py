"""
Logging estruturado das sessões de vídeo.

Cada linha de um driver carrega o provedor, a sala e a geração da
tentativa de join. Assim, uma completion atrasada de uma tentativa antiga
é distinguível da tentativa atual só de olhar o log.

Uso:
    from utils.logging import get_session_logger

    log = get_session_logger(
        "consult-video.agora", provider="agora", room="room-1",
        generation=lambda: driver.generation,
    )
    log.info("Joining room", extra={"step": "join"})
    # Saída: [agora room=room-1 gen=0] [step=join] Joining room

    log.bind(consultation="c-1").info("Panel mounted")
    # Saída: [agora room=room-1 consultation=c-1 gen=0] Panel mounted

Os campos de contexto também vão para o LogRecord com prefixo "video_"
(video_provider, video_room, video_generation, video_step), para
formatters e handlers que queiram filtrar por eles.
"""

import logging
from typing import Any, Callable, MutableMapping, Optional

# Ids longos (tokens de sala, uuids) são cortados no prefixo
MAX_FIELD_LENGTH = 16

# Chaves de extra consumidas pelo adapter (não vão cruas para o record)
_CONSUMED_KEYS = ("step", "duration_ms")


def _short(value: Any) -> str:
    if value is None:
        return ""
    return str(value)[:MAX_FIELD_LENGTH]


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Adapter que prefixa as mensagens com o contexto da sessão de vídeo."""

    def __init__(
        self,
        logger: logging.Logger,
        generation: Optional[Callable[[], int]] = None,
        **context: Any,
    ):
        super().__init__(logger, {k: _short(v) for k, v in context.items()})
        self._generation = generation

    def bind(self, **context: Any) -> "SessionLoggerAdapter":
        """Cria um adapter filho com campos extras (ou sobrescritos)."""
        merged = dict(self.extra)
        merged.update(context)
        return SessionLoggerAdapter(self.logger, self._generation, **merged)

    def _label(self, generation: Optional[int]) -> str:
        # Provedor sempre primeiro e sem chave
        provider = self.extra.get("provider")
        parts = [provider] if provider else []
        for key, value in self.extra.items():
            if key == "provider" or not value:
                continue
            parts.append(f"{key}={value}")
        if generation is not None:
            parts.append(f"gen={generation}")
        return f"[{' '.join(parts)}]" if parts else ""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple:
        """Monta prefixo [contexto] [step=...] e sufixo de duração."""
        extra = kwargs.get("extra") or {}
        generation = self._generation() if self._generation is not None else None

        prefix = self._label(generation)

        # Step é opcional (sdk, join, media, publish, teardown, ...)
        step = extra.get("step")
        if step:
            prefix = f"{prefix} [step={step}]".strip()

        duration_ms = extra.get("duration_ms")
        suffix = f" ({duration_ms:.0f}ms)" if duration_ms is not None else ""

        # Dict novo: o extra do chamador não é alterado
        record_extra = {f"video_{k}": v for k, v in self.extra.items()}
        if generation is not None:
            record_extra["video_generation"] = generation
        if step:
            record_extra["video_step"] = step
        record_extra.update({k: v for k, v in extra.items() if k not in _CONSUMED_KEYS})
        kwargs["extra"] = record_extra

        return f"{prefix} {msg}{suffix}".strip(), kwargs


def get_session_logger(
    name: str,
    generation: Optional[Callable[[], int]] = None,
    **context: Any,
) -> SessionLoggerAdapter:
    """Cria um logger com o contexto da sessão de vídeo.

    Args:
        name: Nome do logger (ex: "consult-video.agora")
        generation: Callable que devolve a geração atual do join (opcional)
        **context: Campos do prefixo, na ordem dada (provider, room, consultation...)

    Returns:
        SessionLoggerAdapter ligado à sessão
    """
    return SessionLoggerAdapter(logging.getLogger(name), generation, **context)
