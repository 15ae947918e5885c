import json
import os
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

# 避免导入 api 时写入 .env
os.environ.setdefault("SESSION_SECRET", "test-secret")
os.environ.setdefault("MICRONET_REFRESH_INTERVAL", "0")

API_PATH = "/micronets/v1/gateway"


class FakeGateway:
    """内存中的假网关 REST API，通过 httpx.MockTransport 提供"""

    def __init__(self):
        self.micronets = {}
        self.devices = {}
        self.onboards = []
        self.requests = []
        self.accept_micronets = True

    def add_micronet(self, micronet_id, subnet, mask="255.255.255.0"):
        self.micronets[micronet_id] = {
            "micronetId": micronet_id,
            "ipv4Network": {
                "network": f"10.135.{subnet}.0",
                "mask": mask,
                "gateway": f"10.135.{subnet}.1",
            },
            "interface": "wlp2s0",
            "vlan": 100 + subnet,
        }
        self.devices[micronet_id] = {}

    def add_raw_micronet(self, micronet):
        self.micronets[micronet["micronetId"]] = micronet
        self.devices[micronet["micronetId"]] = {}

    def add_device(self, micronet_id, device_id, ipv4, psk="secret"):
        self.devices[micronet_id][device_id] = {
            "deviceId": device_id,
            "macAddress": {"eui48": device_id},
            "networkAddress": {"ipv4": ipv4},
            "psk": psk,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path.removeprefix(API_PATH)
        self.requests.append((method, path))
        parts = [p for p in path.split("/") if p]
        body = json.loads(request.content) if request.content else None

        if parts == ["micronets"]:
            if method == "GET":
                return httpx.Response(200, json={"micronets": list(self.micronets.values())})
            if method == "DELETE":
                self.micronets.clear()
                self.devices.clear()
                return httpx.Response(204)
            if method == "POST":
                if not self.accept_micronets:
                    return httpx.Response(500, json={"error": "rejected"})
                micronet = body["micronet"]
                self.micronets[micronet["micronetId"]] = micronet
                self.devices[micronet["micronetId"]] = {}
                return httpx.Response(201, json={"micronet": micronet})

        micronet_id = parts[1] if len(parts) > 1 else None
        if micronet_id not in self.micronets:
            return httpx.Response(404, json={"error": "no such micronet"})

        if len(parts) == 2 and method == "DELETE":
            del self.micronets[micronet_id]
            del self.devices[micronet_id]
            return httpx.Response(204)

        devices = self.devices[micronet_id]
        if len(parts) == 3:
            if method == "GET":
                return httpx.Response(200, json={"devices": list(devices.values())})
            if method == "POST":
                device = body["device"]
                devices[device["deviceId"]] = device
                return httpx.Response(201, json={"device": device})

        device_id = parts[3]
        if device_id not in devices:
            return httpx.Response(404, json={"error": "no such device"})
        if len(parts) == 5 and parts[4] == "onboard" and method == "PUT":
            self.onboards.append((micronet_id, device_id, body))
            return httpx.Response(200, json=body)
        if method == "GET":
            return httpx.Response(200, json={"device": devices[device_id]})
        if method == "PUT":
            devices[device_id] = body["device"]
            return httpx.Response(200, json=body)
        if method == "DELETE":
            del devices[device_id]
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def gateway_client(fake_gateway, monkeypatch):
    from gateway import GatewayClient

    monkeypatch.setattr("gateway.resolve_interface", lambda name: name)
    return GatewayClient("gw.test", transport=httpx.MockTransport(fake_gateway.handler))
