#!/usr/bin/env python3
"""
Consultation Video - runner de sessão sem interface

Resolve a credencial de vídeo de uma consulta, entra na sala com o provedor
escolhido pelo backend e renderiza a mídia em sinks de log. Útil para smoke test
de um par backend/provedor sem navegador.

Uso:
    python consult_video.py <consultation_id> --user-id doctor-1 [--duration 60]
"""

import argparse
import asyncio
import logging
import signal
import sys

from config import LOG_CONFIG, METRICS_CONFIG, STATUS_POLL_CONFIG, VIDEO_CONFIG
from config_validation import validate_config
from api.client import ApiClient
from api.consultation import ConsultationApi
from metrics import start_metrics_server
from session.control_surface import ControlSurface, SurfaceView
from session.media_sink import LoggingMediaSink, MountRegistry
from session.models import DevicePreferences, LocalUser
from session.panel import VideoPanel
from session.status_poller import ConsultationStatusPoller
from session.token_resolver import TokenResolver

# Logging
logging.basicConfig(
    level=getattr(logging, LOG_CONFIG["level"].upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S"
)
logger = logging.getLogger("consult-video")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Entra na sessão de vídeo de uma consulta sem interface")
    parser.add_argument("consultation_id", help="Id da consulta")
    parser.add_argument("--user-id", required=True, help="Id do participante local")
    parser.add_argument("--user-name", default="User", help="Nome exibido do participante local")
    parser.add_argument("--microphone-id", default=None, help="Id do microfone preferido")
    parser.add_argument("--camera-id", default=None, help="Id da câmera preferida")
    parser.add_argument("--duration", type=float, default=0,
                        help="Sai após N segundos (0 = até SIGINT/SIGTERM)")
    parser.add_argument("--no-poll", action="store_true", help="Desabilita o poller de status")
    return parser.parse_args(argv)


def _log_view(view: SurfaceView) -> None:
    details = [view.status_label]
    if view.message:
        details.append(view.message)
    if view.error_chip:
        details.append(view.error_chip)
    if view.warning:
        details.append(view.warning)
    if view.timer:
        details.append(view.timer)
    logger.info(f"[{view.status.value}] " + " | ".join(details))


async def main(args: argparse.Namespace) -> int:
    """Entry point principal"""
    logger.info("=" * 60)
    logger.info(" CONSULTATION VIDEO - Session runner")
    logger.info("=" * 60)

    validate_config()

    if METRICS_CONFIG.get("enabled", True):
        start_metrics_server(METRICS_CONFIG.get("port", 9091))
    else:
        logger.info(" Métricas Prometheus desabilitadas")

    mounts = MountRegistry()
    for mount_id in (VIDEO_CONFIG["local_mount_id"], VIDEO_CONFIG["remote_mount_id"]):
        mounts.register(mount_id, LoggingMediaSink(mount_id))

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("Sinal de shutdown recebido...")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    async with ApiClient() as client:
        api = ConsultationApi(client)
        surface = ControlSurface(
            consultation_id=args.consultation_id,
            api=api,
            on_end=shutdown_event.set,
            on_change=_log_view,
        )
        panel = VideoPanel(
            args.consultation_id,
            LocalUser(args.user_id, args.user_name),
            TokenResolver(api),
            mounts,
            surface=surface,
            preferences=DevicePreferences(args.microphone_id, args.camera_id),
        )

        poller = None
        if STATUS_POLL_CONFIG.get("enabled", True) and not args.no_poll:
            poller = ConsultationStatusPoller(
                api,
                args.consultation_id,
                on_update=lambda status: logger.info(
                    f"Presença: doctor={status.doctor_joined} patient={status.patient_joined} "
                    f"active={status.is_active}"
                ),
            )
            poller.start()

        try:
            await panel.mount()
            if args.duration > 0:
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=args.duration)
                except asyncio.TimeoutError:
                    logger.info(f"Duração de {args.duration:.0f}s atingida")
            else:
                await shutdown_event.wait()
        finally:
            logger.info(" Saindo da sessão...")
            if poller is not None:
                await poller.stop()
            await panel.unmount()
            logger.info(" Sessão encerrada")

    return 0 if surface.view.error_chip is None else 1


def run():
    try:
        sys.exit(asyncio.run(main(parse_args())))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
