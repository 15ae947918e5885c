"""微网网关 REST 客户端

通常运行在网关设备上，设置 GATEWAY_HOST 可从外部访问网关。
每个请求只尝试一次，失败时记录日志并返回失败的 GatewayResult，不抛出异常。
"""
import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, TypeVar

import httpx
from pydantic import ValidationError

from config import (
    GATEWAY_HOST, GATEWAY_PORT, GATEWAY_API_PATH, GATEWAY_TIMEOUT, WIFI_IFACE,
    SUBNET_PREFIX, SUBNET_MASK, VLAN_BASE, DEFAULT_MICRONETS, NO_MICRONETS,
    MICRONET_CACHE_MAX_AGE, INCLUDE_DEVICE_NAME, BOOTSTRAP_TEST, DPP_AKMS,
    TEST_DEVICE_MAC, TEST_DEVICE_CLASS, TEST_DEVICE_NAME,
)
from iface import resolve_interface
from models import Micronet, MicronetList
from utils import derive_device_id, generate_passphrase

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class GatewayResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None, status_code: Optional[int] = None) -> "GatewayResult[T]":
        return cls(value=value, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: Optional[int] = None) -> "GatewayResult[T]":
        return cls(error=error, status_code=status_code)


class MicronetCache:
    """最近一次获取的微网列表

    只由 replace() 填充；超过 max_age 秒或调用 invalidate() 后视为过期。
    """

    def __init__(self, max_age: float = MICRONET_CACHE_MAX_AGE):
        self.max_age = max_age
        self._micronets: List[Micronet] = []
        self._refreshed_at: Optional[float] = None

    def replace(self, micronets: List[Micronet]):
        self._micronets = list(micronets)
        self._refreshed_at = time.monotonic()

    def invalidate(self):
        self._refreshed_at = None

    @property
    def stale(self) -> bool:
        if self._refreshed_at is None:
            return True
        return time.monotonic() - self._refreshed_at > self.max_age

    @property
    def micronets(self) -> List[Micronet]:
        return list(self._micronets)

    def find(self, micronet_id: str) -> Optional[Micronet]:
        return next((m for m in self._micronets if m.micronet_id == micronet_id), None)

    def ids(self) -> List[str]:
        return [m.micronet_id for m in self._micronets]

    def __len__(self):
        return len(self._micronets)


def next_free_address(gateway: str, mask: str, blocked) -> Optional[str]:
    """网关之后第一个不在 blocked 中的地址

    候选范围: 网关末位 + 1 到 255 - 掩码末位 (不含)。
    """
    tuples = gateway.split(".")
    start = int(tuples[3]) + 1
    end = 255 - int(mask.split(".")[3])
    prefix = ".".join(tuples[:3])
    for i in range(start, end):
        proposed = f"{prefix}.{i}"
        if proposed not in blocked:
            return proposed
    return None


def _ok_or_absent(response: httpx.Response) -> bool:
    return response.is_success or response.status_code == 404


def _json_or_none(response: httpx.Response):
    # 创建成功但响应体为空或不是 JSON
    try:
        return response.json()
    except ValueError:
        return None


class GatewayClient:
    def __init__(self, host: str = GATEWAY_HOST, port: int = GATEWAY_PORT, *,
                 cache: Optional[MicronetCache] = None,
                 interface: str = WIFI_IFACE,
                 include_device_name: bool = INCLUDE_DEVICE_NAME,
                 timeout: float = GATEWAY_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = f"http://{host}:{port}{GATEWAY_API_PATH}"
        self.cache = cache if cache is not None else MicronetCache()
        self.interface = interface
        self.include_device_name = include_device_name
        self.timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                     transport=self._transport) as client:
            return await client.request(method, path, json=json)

    # --- 启动 ---
    async def initialize(self, bootstrap: bool = BOOTSTRAP_TEST):
        self.interface = resolve_interface(self.interface)
        logger.info("Initializing: get/set list of micronets (device classes)")

        if bootstrap:
            await self.delete_micronets()

        classes = await self.fetch_class_list()
        logger.info(f"Available micronets (device classes): {classes}")

        if bootstrap:
            await self.create_device(TEST_DEVICE_MAC, TEST_DEVICE_CLASS, TEST_DEVICE_NAME)

    # --- 微网 ---
    async def fetch_micronets(self) -> GatewayResult[List[Micronet]]:
        try:
            response = await self._request("GET", "/micronets")
            if response.status_code != 200:
                logger.error(f"Unable to get micronets list: {response.status_code}")
                self.cache.replace([])
                return GatewayResult.failure("Unable to get micronets list", response.status_code)
            micronets = MicronetList.model_validate(response.json()).micronets
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error(f"Unable to get micronets list: {e}")
            self.cache.replace([])
            return GatewayResult.failure(str(e))
        self.cache.replace(micronets)
        return GatewayResult.success(micronets)

    async def establish_micronets(self):
        """若网关上没有微网，则创建默认微网"""
        await self.fetch_micronets()
        if len(self.cache) == 0:
            for subnet, micronet_id in enumerate(DEFAULT_MICRONETS, start=1):
                await self.create_micronet(micronet_id, subnet)
            await self.fetch_micronets()
            if len(self.cache) == 0:
                logger.warning("No micronets available, mobile clients will see an empty class list")

    async def fetch_class_list(self) -> List[str]:
        await self.establish_micronets()
        return self.cache.ids() or [NO_MICRONETS]

    async def create_micronet(self, micronet_id: str, subnet: int) -> GatewayResult[dict]:
        await self.delete_micronet(micronet_id)

        body = {
            "micronet": {
                "micronetId": micronet_id,
                "ipv4Network": {
                    "network": f"{SUBNET_PREFIX}.{subnet}.0",
                    "mask": SUBNET_MASK,
                    "gateway": f"{SUBNET_PREFIX}.{subnet}.1",
                },
                "interface": self.interface,
                "vlan": VLAN_BASE + subnet,
            }
        }
        try:
            response = await self._request("POST", "/micronets", json=body)
            if not response.is_success:
                logger.error(f"Unable to create micronet {micronet_id}: {response.status_code}")
                return GatewayResult.failure("Unable to create micronet", response.status_code)
            micronet = _json_or_none(response)
        except httpx.HTTPError as e:
            logger.error(f"Unable to create micronet {micronet_id}: {e}")
            return GatewayResult.failure(str(e))
        logger.info(f"Micronet created: {micronet}")
        return GatewayResult.success(micronet, response.status_code)

    async def delete_micronet(self, micronet_id: str) -> GatewayResult[None]:
        return await self._delete(f"/micronets/{micronet_id}", f"micronet {micronet_id}")

    async def delete_micronets(self) -> GatewayResult[None]:
        return await self._delete("/micronets", "(all) micronets")

    async def _delete(self, path: str, what: str) -> GatewayResult[None]:
        # 404/204 表示已不存在
        try:
            response = await self._request("DELETE", path)
        except httpx.HTTPError as e:
            logger.error(f"Unable to delete {what}: {e}")
            return GatewayResult.failure(str(e))
        if not _ok_or_absent(response):
            logger.error(f"Unable to delete {what}: {response.status_code}")
            return GatewayResult.failure(f"Unable to delete {what}", response.status_code)
        return GatewayResult.success(status_code=response.status_code)

    # --- 设备 ---
    async def allocate_address(self, micronet_id: str) -> GatewayResult[str]:
        """该微网中第一个可用的IPv4地址"""
        try:
            response = await self._request("GET", f"/micronets/{micronet_id}/devices")
            if response.status_code != 200:
                logger.error(f"Unable to assign IP address: {response.status_code}")
                return GatewayResult.failure("Unable to list devices", response.status_code)
            devices = response.json().get("devices", [])
            blocked = {d["networkAddress"]["ipv4"] for d in devices}
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Unable to assign IP address: {e}")
            return GatewayResult.failure(str(e))

        micronet = self.cache.find(micronet_id)
        if micronet is None or self.cache.stale:
            await self.fetch_micronets()
            micronet = self.cache.find(micronet_id)
        if micronet is None:
            logger.error(f"Unable to assign IP address: unknown micronet {micronet_id}")
            return GatewayResult.failure(f"Unknown micronet {micronet_id}")

        network = micronet.ipv4_network
        if network is None:
            logger.error(f"Unable to assign IP address: micronet {micronet_id} has no ipv4Network")
            return GatewayResult.failure(f"Micronet {micronet_id} has no ipv4Network")
        try:
            address = next_free_address(network.gateway, network.mask, blocked)
        except (IndexError, ValueError) as e:
            logger.error(f"Unable to assign IP address: bad ipv4Network in {micronet_id}: {e}")
            return GatewayResult.failure(f"Bad ipv4Network in micronet {micronet_id}")
        if address is None:
            logger.warning(f"No IP addresses available in micronet {micronet_id}")
            return GatewayResult.failure("No IP addresses available")
        return GatewayResult.success(address)

    async def create_device(self, mac: str, micronet_id: str, device_name: Optional[str] = None) -> GatewayResult[dict]:
        device_id = derive_device_id(mac)

        await self.delete_device(device_id, micronet_id)

        passphrase = generate_passphrase()
        address = await self.allocate_address(micronet_id)
        if not address.ok:
            return GatewayResult.failure(f"Unable to create device: {address.error}", address.status_code)

        body = {
            "device": {
                "deviceId": device_id,
                "macAddress": {"eui48": mac},
                "networkAddress": {"ipv4": address.value},
                "psk": passphrase,
            }
        }
        if self.include_device_name and device_name is not None:
            body["device"]["deviceName"] = device_name

        try:
            response = await self._request("POST", f"/micronets/{micronet_id}/devices", json=body)
            if not response.is_success:
                logger.error(f"Unable to create device: {response.status_code}")
                return GatewayResult.failure("Unable to create device", response.status_code)
            device = _json_or_none(response)
        except httpx.HTTPError as e:
            logger.error(f"Unable to create device: {e}")
            return GatewayResult.failure(str(e))
        logger.info(f"Device created: {device}")
        return GatewayResult.success(device, response.status_code)

    async def delete_device(self, device_id: str, micronet_id: str) -> GatewayResult[None]:
        return await self._delete(f"/micronets/{micronet_id}/devices/{device_id}", f"device {device_id}")

    async def get_device(self, device_id: str, micronet_id: str) -> GatewayResult[dict]:
        try:
            response = await self._request("GET", f"/micronets/{micronet_id}/devices/{device_id}")
            if response.status_code != 200:
                logger.error(f"Unable to get device {device_id}: {response.status_code}")
                return GatewayResult.failure("Unable to get device", response.status_code)
            return GatewayResult.success(response.json(), response.status_code)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Unable to get device {device_id}: {e}")
            return GatewayResult.failure(str(e))

    async def update_device_psk(self, device_id: str, micronet_id: str) -> GatewayResult[dict]:
        """更换设备 PSK (用于测试 DPP RECONFIG)

        返回的是更新前获取到的设备记录。
        """
        current = await self.get_device(device_id, micronet_id)
        if not current.ok:
            return current

        updated = copy.deepcopy(current.value)
        try:
            updated["device"]["psk"] = generate_passphrase()
            response = await self._request("PUT", f"/micronets/{micronet_id}/devices/{device_id}", json=updated)
        except (KeyError, TypeError) as e:
            logger.error(f"Unable to update PSK: malformed device record {e}")
            return GatewayResult.failure("Malformed device record")
        except httpx.HTTPError as e:
            logger.error(f"Unable to update PSK: {e}")
            return GatewayResult.failure(str(e))
        if not response.is_success:
            logger.error(f"Unable to update PSK: {response.status_code}")
            return GatewayResult.failure("Unable to update PSK", response.status_code)
        logger.info(f"Device PSK updated for {device_id}")
        return GatewayResult.success(current.value, response.status_code)

    async def onboard(self, mac: str, micronet_id: str, uri: str) -> GatewayResult[None]:
        """对已存在的设备记录发起 DPP 入网

        DPP v2 之前需要显式请求 connector (RECONFIG 需要)，而 DPP + PSK 不是有效组合，
        所以暂时请求 PSK + DPP + SAE。
        """
        device_id = derive_device_id(mac)
        body = {
            "dpp": {
                "akms": list(DPP_AKMS),
                "uri": uri,
            }
        }
        try:
            response = await self._request("PUT", f"/micronets/{micronet_id}/devices/{device_id}/onboard", json=body)
        except httpx.HTTPError as e:
            logger.error(f"Unable to initiate onboard: {e}")
            return GatewayResult.failure(str(e))
        if not response.is_success:
            logger.error(f"Unable to initiate onboard: {response.status_code}")
            return GatewayResult.failure("Unable to initiate onboard", response.status_code)
        logger.info(f"DPP onboard initiated: {body}")
        return GatewayResult.success(status_code=response.status_code)
