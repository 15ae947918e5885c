import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_FILE = BASE_DIR / ".env"
load_dotenv(ENV_FILE)

# 网关（可在网关外部运行，设置 GATEWAY_HOST 指向网关地址）
GATEWAY_HOST = os.getenv("GATEWAY_HOST", "localhost")
GATEWAY_PORT = 5000
GATEWAY_API_PATH = "/micronets/v1/gateway"
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", "10"))

# 等待网关提供无线网卡信息，暂时固定
WIFI_IFACE = "wlp2s0"

# 子网规划: 10.135.<n>.0/24, VLAN 100+n
SUBNET_PREFIX = "10.135"
SUBNET_MASK = "255.255.255.0"
VLAN_BASE = 100
DEFAULT_MICRONETS = ["Security", "Medical", "Personal", "Generic", "Shared"]
NO_MICRONETS = "No Micronets ☹️"

MICRONET_REFRESH_INTERVAL = int(os.getenv("MICRONET_REFRESH_INTERVAL", "300"))
MICRONET_CACHE_MAX_AGE = float(os.getenv("MICRONET_CACHE_MAX_AGE", "300"))

# 设备名称字段需要网关支持后再打开
INCLUDE_DEVICE_NAME = os.getenv("INCLUDE_DEVICE_NAME", "0") == "1"

# 启动时清空网关并创建测试设备
BOOTSTRAP_TEST = os.getenv("BOOTSTRAP_TEST", "0") == "1"
TEST_DEVICE_MAC = "46:56:09:45:16:17"
TEST_DEVICE_CLASS = "Personal"
TEST_DEVICE_NAME = "myPhone"

DPP_AKMS = ["psk", "dpp", "sae"]

SESSION_COOKIE = "3010.connect.sid"
LOGIN_USERNAME = os.getenv("LOGIN_USERNAME")
LOGIN_PASSWORD = os.getenv("LOGIN_PASSWORD")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3010"))
API_PREFIXES = ["/v1/dpp", "/portal/v1/dpp"]
