"""
Application configuration using Pydantic Settings
"""

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache

from uniadmin.core.identity import validate_tenant_code


class DepartmentSettings(BaseModel):
    """One department partition: code, display name and its own database"""
    code: str
    name: str
    database_url: str


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "University Administration Platform"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # API
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Department partitions (JSON list in the environment)
    DEPARTMENTS: list[DepartmentSettings] = [
        DepartmentSettings(code="CS", name="Computer Science", database_url="sqlite:///./cs_partition.db"),
        DepartmentSettings(code="MATH", name="Mathematics", database_url="sqlite:///./math_partition.db"),
        DepartmentSettings(code="ENG", name="Engineering", database_url="sqlite:///./eng_partition.db"),
    ]
    SQL_ECHO: bool = False

    # Timeouts
    PARTITION_LOCK_TIMEOUT_SECONDS: float = 5.0
    AGGREGATE_TENANT_TIMEOUT_SECONDS: float = 3.0

    # JWT (tokens are issued by the external auth service)
    JWT_SECRET_KEY: str = "jwt-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"

    @field_validator("DEPARTMENTS")
    @classmethod
    def validate_department_codes(cls, departments: list[DepartmentSettings]) -> list[DepartmentSettings]:
        seen = set()
        for department in departments:
            validate_tenant_code(department.code)
            if department.code in seen:
                raise ValueError(f"Duplicate department code: {department.code}")
            seen.add(department.code)
        return departments

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
