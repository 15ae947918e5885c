import logging
import secrets
from abc import ABC, abstractmethod
from typing import Optional

from config import LOGIN_USERNAME, LOGIN_PASSWORD

logger = logging.getLogger(__name__)


class Authenticator(ABC):
    @abstractmethod
    def authenticate(self, username: Optional[str], password: Optional[str]) -> bool:
        ...


class AllowAllAuthenticator(Authenticator):
    """任何登录都通过

    临时方案：以后网关上应贴有登录凭据，并提供修改凭据的接口。
    """

    def authenticate(self, username, password):
        return True


class StaticCredentialsAuthenticator(Authenticator):
    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def authenticate(self, username, password):
        if username is None or password is None:
            return False
        user_ok = secrets.compare_digest(username.encode(), self.username.encode())
        pass_ok = secrets.compare_digest(password.encode(), self.password.encode())
        return user_ok and pass_ok


def default_authenticator() -> Authenticator:
    if LOGIN_USERNAME and LOGIN_PASSWORD:
        logger.info(f"Login restricted to user {LOGIN_USERNAME}")
        return StaticCredentialsAuthenticator(LOGIN_USERNAME, LOGIN_PASSWORD)
    logger.warning("No login credentials configured, every login will succeed")
    return AllowAllAuthenticator()
