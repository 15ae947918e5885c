from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field


# 微网 (网关上的隔离子网)
class Ipv4Network(BaseModel):
    network: str
    mask: str
    gateway: str


class Micronet(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    micronet_id: str = Field(alias="micronetId")
    # 只有分配地址时才需要
    ipv4_network: Optional[Ipv4Network] = Field(default=None, alias="ipv4Network")
    interface: Optional[str] = None
    vlan: Optional[int] = None


class MicronetList(BaseModel):
    micronets: List[Micronet] = Field(default_factory=list)


# 入网请求
class Bootstrap(BaseModel):
    mac: str
    uri: str


class DeviceClass(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_class: str = Field(alias="class")


class OnboardUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_name: Optional[str] = Field(default=None, alias="deviceName")


class OnboardRequest(BaseModel):
    bootstrap: Bootstrap
    device: DeviceClass
    user: OnboardUser = Field(default_factory=OnboardUser)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
