import datetime
import secrets
from typing import Optional

import jwt  # Import PyJWT
from jwt import ExpiredSignatureError, InvalidTokenError


class SecurityService:
    """Bearer-token verification shared by the HTTP API and the socket handshake.

    Tokens are issued by the identity service; ``create_access_token`` exists
    for development and tests.
    """

    def __init__(self, config):
        self.config = config

    def create_access_token(
        self, data: dict, expires_delta: Optional[datetime.timedelta] = None
    ):
        to_encode = data.copy()
        if "sub" in to_encode:
            to_encode["sub"] = str(to_encode["sub"])
        to_encode.update({"nonce": secrets.token_hex(8)})  # Add a random nonce
        if expires_delta:
            expire = datetime.datetime.now(datetime.timezone.utc) + expires_delta
        else:
            expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
                minutes=self.config.ACCESS_TOKEN_EXPIRE_MINUTES
            )
        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(
            to_encode, self.config.SECRET_KEY, algorithm=self.config.ALGORITHM
        )
        return encoded_jwt, expire

    def decode_access_token(self, token: str) -> Optional[int]:
        try:
            payload = jwt.decode(
                token, self.config.SECRET_KEY, algorithms=[self.config.ALGORITHM]
            )
        except (ExpiredSignatureError, InvalidTokenError):
            return None
        subject = payload.get("sub")
        if subject is None:
            return None
        try:
            return int(subject)
        except (TypeError, ValueError):
            return None
