import os
import secrets
from contextlib import asynccontextmanager
from typing import Optional

import logging
from dotenv import load_dotenv, set_key
from fastapi import FastAPI, Depends, APIRouter, Request
from starlette import status
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import JSONResponse, PlainTextResponse, Response

from auth import Authenticator, default_authenticator
from config import ENV_FILE, SESSION_COOKIE, API_PREFIXES, MICRONET_REFRESH_INTERVAL
from gateway import GatewayClient
from models import OnboardRequest, LoginRequest
from utils import scheduler, schedule_refresh

logger = logging.getLogger(__name__)


def get_or_create_session_secret():
    load_dotenv(ENV_FILE)
    secret = os.getenv("SESSION_SECRET")
    if secret:
        return secret

    new_secret = secrets.token_urlsafe(32)
    set_key(str(ENV_FILE), "SESSION_SECRET", new_secret)
    logger.info(f"Generated session secret, stored in {ENV_FILE}")
    return new_secret


gateway_client = GatewayClient()
authenticator = default_authenticator()


def get_gateway() -> GatewayClient:
    return gateway_client


def get_authenticator() -> Authenticator:
    return authenticator


class NotAuthenticated(Exception):
    pass


def check_auth(request: Request):
    if not request.session.get("authenticated"):
        raise NotAuthenticated()


MISSING_IDS = "Device ID and/or Micronet ID not specified"


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message, "status": status_code}, status_code=status_code)


router = APIRouter()


@router.get("/config")
async def mobile_config(gateway: GatewayClient = Depends(get_gateway)):
    return {"deviceClasses": await gateway.fetch_class_list()}


@router.get("/session")
def session_probe():
    return Response(status_code=status.HTTP_200_OK)


@router.post("/onboard", dependencies=[Depends(check_auth)])
async def onboard(body: OnboardRequest, gateway: GatewayClient = Depends(get_gateway)):
    mac = body.bootstrap.mac
    micronet_id = body.device.device_class
    logger.info(f"onboard: {mac} - {body.bootstrap.uri}")

    # deviceName 可选
    created = await gateway.create_device(mac, micronet_id, body.user.device_name)
    if not created.ok:
        logger.warning(f"Device {mac} not created in {micronet_id}: {created.error}")
    started = await gateway.onboard(mac, micronet_id, body.bootstrap.uri)
    if not started.ok:
        logger.warning(f"Onboard of {mac} not started: {started.error}")
    return Response(status_code=status.HTTP_200_OK)


@router.post("/login")
def login(request: Request, credentials: Optional[LoginRequest] = None,
          auth: Authenticator = Depends(get_authenticator)):
    username = credentials.username if credentials else None
    password = credentials.password if credentials else None
    if not auth.authenticate(username, password):
        return Response(status_code=status.HTTP_401_UNAUTHORIZED)

    request.session["username"] = username or "local"
    request.session["authenticated"] = True
    return Response(status_code=status.HTTP_201_CREATED)


# 以下两个接口用于让设备掉线 (RECONFIG 测试)
@router.post("/updateDevicePSK")
@router.post("/updateDevicePSK/{device_id}")
@router.post("/updateDevicePSK/{device_id}/{micronet_id}")
async def update_device_psk(device_id: Optional[str] = None, micronet_id: Optional[str] = None,
                            gateway: GatewayClient = Depends(get_gateway)):
    if not device_id or not micronet_id:
        return error_response(MISSING_IDS, status.HTTP_400_BAD_REQUEST)

    result = await gateway.update_device_psk(device_id, micronet_id)
    if not result.ok:
        return error_response(result.error, status.HTTP_502_BAD_GATEWAY)
    return JSONResponse(result.value, status_code=status.HTTP_201_CREATED)


@router.post("/deleteDevice")
@router.post("/deleteDevice/{device_id}")
@router.post("/deleteDevice/{device_id}/{micronet_id}")
async def delete_device(device_id: Optional[str] = None, micronet_id: Optional[str] = None,
                        gateway: GatewayClient = Depends(get_gateway)):
    if not device_id or not micronet_id:
        return error_response(MISSING_IDS, status.HTTP_400_BAD_REQUEST)

    result = await gateway.delete_device(device_id, micronet_id)
    if not result.ok:
        return error_response(result.error, status.HTTP_502_BAD_GATEWAY)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/logout")
def logout(request: Request):
    if not request.session.get("authenticated"):
        return Response(status_code=status.HTTP_200_OK)
    # cookie 会话清空即销毁，不会失败，所以没有 500 分支
    request.session.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- FastAPI 应用 ---
@asynccontextmanager
async def lifespan(_app: FastAPI):
    await gateway_client.initialize()
    schedule_refresh(gateway_client.fetch_micronets, MICRONET_REFRESH_INTERVAL)
    scheduler.start()
    yield
    scheduler.shutdown()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SessionMiddleware, secret_key=get_or_create_session_secret(), session_cookie=SESSION_COOKIE)


@app.exception_handler(NotAuthenticated)
async def not_authenticated_handler(_request: Request, _exc: NotAuthenticated):
    return PlainTextResponse("not authenticated", status_code=status.HTTP_401_UNAUTHORIZED)


for prefix in API_PREFIXES:
    app.include_router(router, prefix=prefix)
