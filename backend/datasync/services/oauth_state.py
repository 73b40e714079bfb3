"""OAuth round-trip state.

WHAT:
    Encodes the workspace being connected into the `state` parameter sent to
    a third-party authorization server, and decodes it when the server
    redirects back.

WHY:
    The redirect leaves our domain, so the callback has no other way to know
    which workspace the flow belongs to.

FORMAT:
    "{nonce}:{workspace_id}"  nonce = 16 lowercase hex chars

    Decoding splits on the first separator only. Neither a hex nonce nor a
    workspace UUID or short id contains ':'.

NONCES:
    OAuthNonceStore remembers every nonce it issues in Redis for a short TTL
    and accepts a state only once, and only if the nonce was issued for the
    same workspace. Without it the state proves nothing beyond "some flow was
    started".
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from redis.exceptions import RedisError

from ..errors import DependencyError, StateDecodeError

logger = logging.getLogger(__name__)

SEPARATOR = ":"
NONCE_BYTES = 8
NONCE_KEY_PREFIX = "oauth_state:"


@dataclass(frozen=True)
class OAuthState:
    nonce: str
    workspace_id: str


def new_nonce() -> str:
    return secrets.token_hex(NONCE_BYTES)


def encode(workspace_id: str, nonce: Optional[str] = None) -> str:
    """Build the state value for `workspace_id`.

    Raises:
        ValueError: workspace_id is empty or contains the separator
    """
    workspace_id = str(workspace_id or "")
    if not workspace_id:
        raise ValueError("workspace_id is required")
    if SEPARATOR in workspace_id:
        raise ValueError(f"workspace_id must not contain {SEPARATOR!r}")

    nonce = nonce or new_nonce()
    if SEPARATOR in nonce:
        raise ValueError(f"nonce must not contain {SEPARATOR!r}")
    return f"{nonce}{SEPARATOR}{workspace_id}"


def decode(state: Optional[str]) -> OAuthState:
    """Split a returned state into nonce and workspace id.

    Raises:
        StateDecodeError: separator missing, or either segment empty
    """
    value = (state or "").strip()
    nonce, separator, workspace_id = value.partition(SEPARATOR)

    if not separator or not workspace_id:
        raise StateDecodeError("workspace ID missing from state")
    if not nonce:
        raise StateDecodeError("nonce missing from state")

    return OAuthState(nonce=nonce, workspace_id=workspace_id)


class OAuthNonceStore:
    """Issue and redeem single-use OAuth state values backed by Redis.

    Usage:
        store = OAuthNonceStore(redis_client, ttl_seconds=600)
        state = store.issue(str(workspace.id))       # before redirect
        decoded = store.consume(state)               # in the callback
    """

    def __init__(self, redis_client, ttl_seconds: int = 600):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(nonce: str) -> str:
        return f"{NONCE_KEY_PREFIX}{nonce}"

    def issue(self, workspace_id: str) -> str:
        state = encode(workspace_id)
        decoded = decode(state)
        try:
            self.redis_client.setex(self._key(decoded.nonce), self.ttl_seconds, decoded.workspace_id)
        except RedisError as e:
            logger.error("[OAUTH_STATE] Could not record state for workspace %s: %s", workspace_id, e)
            raise DependencyError(
                f"OAuth state store unavailable: {type(e).__name__}",
                step="issue_state",
                resource=workspace_id,
            ) from e
        logger.info("[OAUTH_STATE] Issued state for workspace %s (ttl=%ds)", workspace_id, self.ttl_seconds)
        return state

    def consume(self, state: Optional[str]) -> OAuthState:
        """Decode `state` and redeem its nonce.

        Raises:
            StateDecodeError: malformed, unknown, expired, replayed, or bound
                to a different workspace
            DependencyError: Redis unreachable or timed out
        """
        decoded = decode(state)

        try:
            stored = self.redis_client.getdel(self._key(decoded.nonce))
        except RedisError as e:
            logger.error("[OAUTH_STATE] Could not redeem state for workspace %s: %s", decoded.workspace_id, e)
            raise DependencyError(
                f"OAuth state store unavailable: {type(e).__name__}",
                step="consume_state",
                resource=decoded.workspace_id,
            ) from e
        if isinstance(stored, bytes):
            stored = stored.decode("utf-8")

        if stored is None:
            logger.warning("[OAUTH_STATE] Unknown or expired nonce for workspace %s", decoded.workspace_id)
            raise StateDecodeError("state expired or was not issued by this service")
        if stored != decoded.workspace_id:
            logger.warning(
                "[OAUTH_STATE] Nonce bound to workspace %s was returned with workspace %s",
                stored, decoded.workspace_id,
            )
            raise StateDecodeError("state does not match the workspace it was issued for")

        return decoded
