# storefront/utils/retry.py
import redis
import requests
from tenacity import retry, retry_if_exception, retry_if_exception_type, stop_after_attempt, wait_exponential

#only for idempotent calls (GETs, whole-cart writes)
#POST /orders and /payment/* are never retried


def _transient(exc: BaseException) -> bool:
    """Network trouble and 5xx are worth another try, a 4xx answer will not change."""
    if not isinstance(exc, requests.RequestException):
        return False
    response = getattr(exc, "response", None)
    if isinstance(exc, requests.HTTPError) and response is not None:
        return response.status_code >= 500
    return True


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception(_transient),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )
