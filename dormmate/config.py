from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'DormMate'
    app_env: str = 'local'
    app_timezone: str = 'Asia/Kolkata'
    app_base_url: str = 'http://127.0.0.1:8000'
    database_url: str = 'sqlite:///./dormmate.db'
    auth_secret: str = 'change-me'
    auth_session_expiry_hours: int = 12
    auth_admin_email: str = 'admin@dormmate.com'
    auth_admin_password: str = 'admin123456'
    storage_root: str = './storage'
    storage_public_base_url: str = ''
    storage_photo_bucket: str = 'hostel-photos'
    storage_delete_on_photo_remove: bool = False
    assistant_backend: str = 'keyword'
    openrouter_api_base: str = 'https://openrouter.ai/api/v1'
    openrouter_api_key: str = ''
    openrouter_model: str = 'google/gemini-2.0-flash-exp:free'
    openrouter_temperature: float = 0.3
    openrouter_max_tokens: int = 1000
    openrouter_timeout_seconds: float = 30.0
    openrouter_referer: str = 'https://dormmate.lovable.ai'
    openrouter_title: str = 'DormMate Chatbot'
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()
