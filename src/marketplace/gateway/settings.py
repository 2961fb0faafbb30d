"""E-billing settings read from ``[custom.EBILLING]`` in domain.toml.

Values substituted from the environment arrive as strings, so numeric
settings are coerced here once.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class EbillingSettings:
    mode: str = "fake"
    base_url: str = ""
    username: str = ""
    shared_key: str = ""
    redirect_url: str = ""
    callback_url: str = ""
    bill_id_prefix: str = "KEVA"
    expiry_period: int = 60
    timeout: float = 30.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    endpoints: dict = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict | None) -> "EbillingSettings":
        config = config or {}
        return cls(
            mode=str(config.get("mode") or "fake").lower(),
            base_url=str(config.get("base_url") or "").rstrip("/"),
            username=str(config.get("username") or ""),
            shared_key=str(config.get("shared_key") or ""),
            redirect_url=str(config.get("redirect_url") or ""),
            callback_url=str(config.get("callback_url") or ""),
            bill_id_prefix=str(config.get("bill_id_prefix") or "KEVA"),
            expiry_period=int(config.get("expiry_period", 60)),
            timeout=float(config.get("timeout", 30)),
            retry_attempts=max(1, int(config.get("retry_attempts", 3))),
            retry_backoff_seconds=float(config.get("retry_backoff_seconds", 1.0)),
            endpoints=dict(config.get("endpoints") or {}),
        )

    def endpoint(self, name: str, **params) -> str:
        return self.base_url + self.endpoints[name].format(**params)
