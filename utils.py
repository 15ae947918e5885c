import logging
import secrets

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def derive_device_id(mac: str) -> str:
    """设备ID由MAC地址去掉冒号得到"""
    device_id = mac.replace(":", "")
    logger.debug(f"Derived device id {device_id} from {mac}")
    return device_id


def generate_passphrase(length: int = 16) -> str:
    # WPA PSK 需要 8-63 个字符
    return secrets.token_urlsafe(length)[:length]


scheduler = AsyncIOScheduler()


def schedule_refresh(job, interval: int):
    if interval <= 0:
        logger.info("Micronet refresh job disabled")
        return None
    return scheduler.add_job(job, 'interval', seconds=interval, misfire_grace_time=30, coalesce=True, max_instances=1)
