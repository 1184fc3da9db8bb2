import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _default_database_url() -> str:
    db_user = os.getenv("POSTGRES_USER", "postgres")
    db_password = os.getenv("POSTGRES_PASSWORD", "postgres")
    db_host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    db_port = os.getenv("POSTGRES_PORT", "5432")
    db_name = os.getenv("POSTGRES_DB", "storefront")
    return f"postgresql+asyncpg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_echo: bool = False
    db_pool_size: int = 20
    db_pool_recycle: int = 30
    db_connect_timeout: float = 2.0
    create_schema_on_startup: bool = True
    seed_order_statuses: bool = True

    brevo_api_key: str = ""
    brevo_api_url: str = "https://api.brevo.com/v3"
    brevo_sender_email: str = "noreply@storefront.local"
    brevo_sender_name: str = "Storefront"
    admin_email: str = "admin@storefront.local"
    email_timeout: float = 10.0
    public_base_url: str = "http://localhost:3000"

    # Shipping methods that mean "deliver to the customer's address"
    home_delivery_methods: Tuple[str, ...] = field(
        default=("Envío a domicilio", "home_delivery")
    )

    otlp_endpoint: str = ""
    metrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        methods = os.getenv("HOME_DELIVERY_METHODS")
        return cls(
            database_url=os.getenv("DATABASE_URL") or _default_database_url(),
            db_echo=_get_bool("DB_ECHO"),
            db_pool_size=int(os.getenv("DB_POOL_SIZE", "20")),
            db_pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "30")),
            db_connect_timeout=float(os.getenv("DB_CONNECT_TIMEOUT", "2")),
            create_schema_on_startup=_get_bool("CREATE_SCHEMA_ON_STARTUP", "true"),
            seed_order_statuses=_get_bool("SEED_ORDER_STATUSES", "true"),
            brevo_api_key=os.getenv("BREVO_API_KEY", ""),
            brevo_api_url=os.getenv("BREVO_API_URL", "https://api.brevo.com/v3").rstrip("/"),
            brevo_sender_email=os.getenv("BREVO_SENDER_EMAIL", "noreply@storefront.local"),
            brevo_sender_name=os.getenv("BREVO_SENDER_NAME", "Storefront"),
            admin_email=os.getenv("ADMIN_EMAIL", "admin@storefront.local"),
            email_timeout=float(os.getenv("EMAIL_TIMEOUT", "10")),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
            home_delivery_methods=(
                tuple(m.strip() for m in methods.split(",") if m.strip())
                if methods
                else ("Envío a domicilio", "home_delivery")
            ),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", ""),
            metrics_enabled=_get_bool("METRICS_ENABLED", "true"),
        )
