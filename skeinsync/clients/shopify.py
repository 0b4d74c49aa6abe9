import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from ..errors import (
    AuthError,
    ConfigurationError,
    RateLimitError,
    RemoteApiError,
    RemoteValidationError,
    TransportError,
    join_messages,
)
from ..utils.logger import debug, warn

DEFAULT_API_VERSION = "2024-01"


def admin_base(domain: str, api_version: str = DEFAULT_API_VERSION) -> str:
    return f"https://{domain}/admin/api/{api_version}"

def request_headers(token: str) -> dict:
    return {"Content-Type": "application/json", "X-Shopify-Access-Token": token}


@dataclass(frozen=True)
class RetryPolicy:
    # 429s and 5xx share this ceiling: at most max_retries + 1 attempts per call
    max_retries: int = 3
    initial_backoff: float = 1.0
    rate_limit_fallback: float = 2.0
    timeout: float = 30.0

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            max_retries=int(config.get("SHOPIFY_MAX_RETRIES", cls.max_retries)),
            initial_backoff=float(config.get("SHOPIFY_INITIAL_BACKOFF", cls.initial_backoff)),
            rate_limit_fallback=float(config.get("SHOPIFY_RATE_LIMIT_FALLBACK", cls.rate_limit_fallback)),
            timeout=float(config.get("SHOPIFY_TIMEOUT", cls.timeout)),
        )


class wait_for_server(wait_base):
    """Honour Retry-After on 429; exponential backoff for everything else."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy

    def __call__(self, retry_state) -> float:
        exc = retry_state.outcome.exception()
        if isinstance(exc, RateLimitError):
            return exc.retry_after
        return self.policy.initial_backoff * (2 ** (retry_state.attempt_number - 1))


class ShopifyGraphqlClient:
    """One logical Admin GraphQL call per `execute`, with retries hidden from callers."""

    def __init__(
        self,
        shop: str,
        access_token: str,
        policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        api_version: str = DEFAULT_API_VERSION,
    ):
        self.shop = shop.replace("https://", "").replace("http://", "").rstrip("/")
        self.access_token = access_token
        self.policy = policy or RetryPolicy()
        self.session = session or requests.Session()
        self.sleep = sleep
        self.api_version = api_version

    @property
    def url(self) -> str:
        return f"{admin_base(self.shop, self.api_version)}/graphql.json"

    def execute(self, query: str, variables: Optional[dict] = None) -> dict:
        retrying = Retrying(
            stop=stop_after_attempt(self.policy.max_retries + 1),
            wait=wait_for_server(self.policy),
            retry=retry_if_exception_type((RateLimitError, TransportError)),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(self._post_once, query, variables or {})

    def _log_retry(self, retry_state):
        exc = retry_state.outcome.exception()
        warn(
            f"[rpc] {self.shop} attempt {retry_state.attempt_number} failed: {exc}",
            retry_in=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    def _post_once(self, query: str, variables: dict) -> dict:
        try:
            r = self.session.post(
                self.url,
                headers=request_headers(self.access_token),
                json={"query": query, "variables": variables},
                timeout=self.policy.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Request to {self.shop} failed: {e}") from e

        if r.status_code == 429:
            raise RateLimitError(
                f"Rate limited by {self.shop}",
                retry_after=self._retry_after(r),
            )
        if r.status_code >= 500:
            raise TransportError(f"{self.shop} returned HTTP {r.status_code}", status_code=r.status_code)
        if r.status_code in (401, 403):
            raise AuthError(f"{self.shop} rejected credentials (HTTP {r.status_code})", self._error_list(r))
        if r.status_code >= 400:
            raise RemoteApiError(f"{self.shop} returned HTTP {r.status_code}: {r.text}", self._error_list(r))

        try:
            body = r.json()
        except ValueError as e:
            raise RemoteApiError(f"{self.shop} returned a non-JSON body") from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            raise RemoteValidationError(join_messages(errors if isinstance(errors, list) else [errors]), errors)
        debug(f"[rpc] {self.shop} ok")
        return body

    def _retry_after(self, r) -> float:
        try:
            return float(r.headers.get("Retry-After", self.policy.rate_limit_fallback))
        except (TypeError, ValueError):
            return self.policy.rate_limit_fallback

    @staticmethod
    def _error_list(r) -> list:
        try:
            body = r.json()
        except ValueError:
            return []
        errors = body.get("errors") if isinstance(body, dict) else None
        if isinstance(errors, list):
            return errors
        return [errors] if errors else []


def client_for(integration, config, session=None, sleep=time.sleep) -> ShopifyGraphqlClient:
    shop_config = integration.shopify_config()
    if not shop_config:
        raise ConfigurationError(
            f"Integration {integration.id} has no shop domain or access token configured"
        )
    return ShopifyGraphqlClient(
        shop_config["shop"],
        shop_config["access_token"],
        policy=RetryPolicy.from_config(config),
        session=session,
        sleep=sleep,
        api_version=config.get("SHOPIFY_API_VERSION", DEFAULT_API_VERSION),
    )
