from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = Field(default="PDV", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    database_url: str = Field(default="sqlite:///./pdv.db", alias="DATABASE_URL")

    # Terminal / tienda
    terminal_id: str = Field(default="T1", alias="TERMINAL_ID")
    store_name: str = Field(default="Loja Principal", alias="STORE_NAME")
    store_tax_id: str = Field(default="00000000000000", alias="STORE_TAX_ID")
    store_address: Optional[str] = Field(default=None, alias="STORE_ADDRESS")
    currency: str = Field(default="BRL", alias="CURRENCY")

    # Almacenamiento local (sobrevive reinicios)
    queue_path: str = Field(default="data/pending_sales.json", alias="QUEUE_PATH")
    product_cache_path: str = Field(default="data/products_cache.json", alias="PRODUCT_CACHE_PATH")

    # Conectividad
    remote_health_url: Optional[str] = Field(default=None, alias="REMOTE_HEALTH_URL")
    connectivity_timeout: float = Field(default=2.0, alias="CONNECTIVITY_TIMEOUT")
    connectivity_poll_seconds: float = Field(default=15.0, alias="CONNECTIVITY_POLL_SECONDS")

    # Emisor fiscal (NFC-e)
    fiscal_issuer_url: Optional[str] = Field(default=None, alias="FISCAL_ISSUER_URL")
    fiscal_timeout: float = Field(default=30.0, alias="FISCAL_TIMEOUT")

    # Fidelidad
    loyalty_active: bool = Field(default=False, alias="LOYALTY_ACTIVE")
    loyalty_points_per_currency_unit: float = Field(default=1.0, alias="LOYALTY_POINTS_PER_UNIT")
    loyalty_point_value: float = Field(default=0.05, alias="LOYALTY_POINT_VALUE")
    loyalty_validity_days: int = Field(default=365, alias="LOYALTY_VALIDITY_DAYS")

    # Tributos aproximados en el recibo
    tax_estimate_rate: float = Field(default=0.1345, alias="TAX_ESTIMATE_RATE")

    # Descuentos
    discount_max_percent: float = Field(default=15.0, alias="DISCOUNT_MAX_PERCENT")
    discount_reason_required: bool = Field(default=True, alias="DISCOUNT_REASON_REQUIRED")
    allow_item_discount: bool = Field(default=True, alias="ALLOW_ITEM_DISCOUNT")
    allow_order_discount: bool = Field(default=True, alias="ALLOW_ORDER_DISCOUNT")

    # Sincronizacion / cancelacion
    max_sync_attempts: int = Field(default=5, alias="MAX_SYNC_ATTEMPTS")
    cancel_reason_min_length: int = Field(default=10, alias="CANCEL_REASON_MIN_LENGTH")
    balance_update_retries: int = Field(default=3, alias="BALANCE_UPDATE_RETRIES")

    offline_max_ops: int = Field(default=500, alias="OFFLINE_MAX_OPS")
    offline_max_hours: int = Field(default=48, alias="OFFLINE_MAX_HOURS")
    offline_soft_ops: int = Field(default=400, alias="OFFLINE_SOFT_OPS")
    offline_soft_hours: int = Field(default=36, alias="OFFLINE_SOFT_HOURS")

    class Config:
        env_file = ".env"
        populate_by_name = True


settings = Settings()
