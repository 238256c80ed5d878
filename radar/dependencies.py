"""FastAPI dependency injection providers and component singletons."""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import RadarConfig, get_config
from .utils.logging import get_logger

_dep_logger = get_logger("dependencies")

security_scheme = HTTPBearer(auto_error=False)

_config_instance: RadarConfig | None = None
_docker_client = None
_hash_store = None
_platform_client = None
_webhook_sender = None
_detection_store = None
_container_inspector = None
_volume_inspector = None
_detection_engine = None
_alert_sink = None
_scan_scheduler = None


def get_app_config() -> RadarConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


async def require_api_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    config: RadarConfig = Depends(get_app_config),
) -> None:
    """Enforce the bearer token on /api routes when one is configured."""
    if not config.api_token:
        return
    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), config.api_token.encode()
    ):
        _dep_logger.warning("api_auth_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_docker_client():
    """Get the Docker SDK client singleton."""
    global _docker_client
    if _docker_client is None:
        import docker
        config = get_app_config()
        if config.docker_base_url:
            _docker_client = docker.DockerClient(base_url=config.docker_base_url)
        else:
            _docker_client = docker.from_env()
    return _docker_client


def get_hash_store():
    """Get the hash intelligence store singleton."""
    global _hash_store
    if _hash_store is None:
        from .intel.hash_store import HashIntelligenceStore
        config = get_app_config()
        _hash_store = HashIntelligenceStore(
            api_url=config.hash_api_url,
            sync_interval=config.hash_sync_interval,
            hash_cache_size=config.hash_cache_size,
            server_cache_size=config.server_cache_size,
            server_cache_ttl=config.server_cache_ttl,
            timeout=config.http_timeout,
        )
    return _hash_store


def get_platform_client():
    """Get the hosting control-plane client singleton."""
    global _platform_client
    if _platform_client is None:
        from .platform.client import PlatformClient
        config = get_app_config()
        _platform_client = PlatformClient(
            api_url=config.panel_api_url,
            api_key=config.panel_api_key,
            servers_ttl=config.panel_servers_ttl,
            page_size=config.panel_page_size,
            recent_account_days=config.recent_account_days,
            timeout=config.http_timeout,
        )
    return _platform_client


def get_webhook_sender():
    """Get the webhook sender singleton."""
    global _webhook_sender
    if _webhook_sender is None:
        from .notifications.webhook import WebhookSender
        _webhook_sender = WebhookSender(timeout=get_app_config().http_timeout)
    return _webhook_sender


def get_detection_store():
    """Get the detection store singleton."""
    global _detection_store
    if _detection_store is None:
        from .engine.detection_store import DetectionStore
        _detection_store = DetectionStore(max_entries=get_app_config().detection_store_max)
    return _detection_store


def get_container_inspector():
    """Get the container inspector singleton."""
    global _container_inspector
    if _container_inspector is None:
        from .scanner.container_inspector import ContainerInspector
        config = get_app_config()
        _container_inspector = ContainerInspector(get_docker_client(), config={
            "high_cpu_threshold": config.high_cpu_threshold,
            "small_volume_size": config.small_volume_size,
            "high_network_usage": config.high_network_usage,
            "log_tail_lines": config.log_tail_lines,
            "volumes_dir": config.volumes_dir,
        })
    return _container_inspector


def get_volume_inspector():
    """Get the volume inspector singleton."""
    global _volume_inspector
    if _volume_inspector is None:
        from .scanner.volume_inspector import VolumeInspector
        config = get_app_config()
        _volume_inspector = VolumeInspector(get_hash_store(), config={
            "max_jar_size": config.max_jar_size,
            "content_max_bytes": config.content_max_bytes,
        })
    return _volume_inspector


def get_detection_engine():
    """Get the detection engine singleton."""
    global _detection_engine
    if _detection_engine is None:
        from .engine.detection_engine import DetectionEngine
        _detection_engine = DetectionEngine(
            container_inspector=get_container_inspector(),
            volume_inspector=get_volume_inspector(),
            hash_store=get_hash_store(),
            store=get_detection_store(),
            flag_cooldown_hours=get_app_config().flag_cooldown_hours,
        )
    return _detection_engine


def get_alert_sink():
    """Get the alert & enforcement sink singleton."""
    global _alert_sink
    if _alert_sink is None:
        from .alerting.sink import AlertSink
        config = get_app_config()
        _alert_sink = AlertSink(
            platform_client=get_platform_client() if config.panel_api_key else None,
            webhook_sender=get_webhook_sender(),
            webhook_url=config.webhook_url or "",
            config={"log_excerpt_chars": config.log_excerpt_chars},
        )
    return _alert_sink


def get_scan_scheduler():
    """Get the scan scheduler module singleton."""
    global _scan_scheduler
    if _scan_scheduler is None:
        from .modules.scan_scheduler import ScanScheduler
        config = get_app_config()
        _scan_scheduler = ScanScheduler(
            engine=get_detection_engine(),
            hash_store=get_hash_store(),
            config={
                "scan_interval": config.scan_interval,
                "batch_size": config.scan_batch_size,
            },
        )
    return _scan_scheduler
