from functools import lru_cache
import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Europe/Rome", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(default="", alias="DATABASE_URL")
    postgres_db: str = Field(default="dorm", alias="POSTGRES_DB")
    postgres_user: str = Field(default="dorm", alias="POSTGRES_USER")
    postgres_password: str = Field(default="dorm", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")
    jwt_audience: str = Field(default="authenticated", alias="JWT_AUDIENCE")

    default_admin_user_id: str = Field(default="", alias="DEFAULT_ADMIN_USER_ID")

    lav_slot_capacity: int = Field(default=2, alias="LAV_SLOT_CAPACITY")
    asc_slot_capacity: int = Field(default=1, alias="ASC_SLOT_CAPACITY")
    gym_slot_capacity: int = Field(default=6, alias="GYM_SLOT_CAPACITY")

    max_lav_units_per_week: int = Field(default=3, alias="MAX_LAV_UNITS_PER_WEEK")
    max_asc_bookings_per_week: int = Field(default=2, alias="MAX_ASC_BOOKINGS_PER_WEEK")
    max_gym_active_bookings: int = Field(default=1, alias="MAX_GYM_ACTIVE_BOOKINGS")

    quota_reconcile_interval_min: int = Field(default=30, alias="QUOTA_RECONCILE_INTERVAL_MIN")

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(**os.environ)
