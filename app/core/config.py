from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App settings
    PROJECT_NAME: str = "SpendingInsights"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # DynamoDB feed tables (read-only)
    DYNAMO_REGION: str = Field(default="ap-southeast-3")
    DYNAMO_EXPENSES_TABLE: str = Field(default="insights-transactions")
    DYNAMO_WEEKLY_MERCHANT_TABLE: str = Field(default="insights-weekly-merchant")
    DYNAMO_MONTHLY_CASHFLOW_TABLE: str = Field(default="insights-monthly-cashflow")
    DYNAMO_WEEKLY_CATEGORY_TABLE: str = Field(default="insights-weekly-top-category")
    DYNAMO_BUDGETS_TABLE: str = Field(default="insights-budgets")
    DYNAMO_SUBSCRIPTIONS_TABLE: str = Field(default="insights-subscriptions")
    DYNAMO_GOALS_TABLE: str = Field(default="insights-goals")

    # Insight engine
    INSIGHTS_MAX_RESULTS: int = Field(default=5)


settings = Settings()
