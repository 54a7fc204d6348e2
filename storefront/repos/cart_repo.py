# storefront/repos/cart_repo.py
import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, CART_STORAGE_KEY


class CartRepo:
    """
    One JSON document per browsing session, always written whole.
    No versioning: two tabs writing the same key is last-write-wins.
    """

    def __init__(
        self,
        session_id: str,
        client: redis.Redis | None = None,
        storage_key: str = CART_STORAGE_KEY,
    ):
        self.redis = client or redis.Redis.from_url(REDIS_URL, decode_responses=True)
        self.key = f"cart:{session_id}:{storage_key}"

    @redis_retry()
    def load(self) -> str | None:
        raw = self.redis.get(self.key)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    @redis_retry()
    def save(self, document: str) -> None:
        self.redis.set(self.key, document)

    @redis_retry()
    def delete(self) -> None:
        self.redis.delete(self.key)
