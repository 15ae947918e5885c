import platform
import logging
if platform.system() == "Linux":
    from pyroute2 import IPRoute

logger = logging.getLogger(__name__)


def interface_exists(ifname: str) -> bool:
    if platform.system() != "Linux":
        return False
    try:
        with IPRoute() as ipr:
            return bool(ipr.link_lookup(ifname=ifname))
    except Exception as e:
        # 权限不足等
        logger.error(f"Error accessing netlink: {e}")
        return False


def resolve_interface(preferred: str) -> str:
    """微网绑定的无线网卡

    网关暂时不提供网卡信息，所以总是使用配置的名称；本机找不到该网卡时只警告，
    因为本服务可能运行在网关之外。
    """
    if not interface_exists(preferred):
        logger.warning(f"Interface {preferred} not found on this host, using it anyway")
    return preferred
