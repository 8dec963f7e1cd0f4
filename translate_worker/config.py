"""应用配置"""
from pydantic_settings import BaseSettings
from pydantic import model_validator
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    """应用配置类"""

    # 应用信息
    APP_NAME: str = "小说翻译任务服务"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS配置
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # 远端书库（任务、章节、元数据接口）
    CATALOG_BASE_URL: str = "https://books.fishhawk.top/api"
    CATALOG_TOKEN: str = ""
    CATALOG_TIMEOUT_SEC: int = 60

    # 翻译器
    TRANSLATOR_TIMEOUT_SEC: int = 120
    TRANSLATOR_MAX_RETRIES: int = 3
    GPT_MODEL: str = "gpt-3.5-turbo"
    GPT_API_BASE_URL: str = "https://api.openai.com/v1"
    SAKURA_MODEL: str = "sukinishiro"

    # 任务快照
    JOB_DATA_DIR: str = str(Path(__file__).resolve().parents[1] / "data" / "jobs")
    JOB_HISTORY_LIMIT: int = 200

    @model_validator(mode="before")
    @classmethod
    def treat_empty_env_as_unset(cls, data):
        """
        将空字符串环境变量按“未配置”处理。
        这样 .env 中留空不会覆盖默认值。
        """
        if not isinstance(data, dict):
            return data

        cleaned = dict(data)
        for field_name, field in cls.model_fields.items():
            default = field.default

            # 仅当字段本身有可用默认值时，空字符串才回退到默认值
            if default in (None, ""):
                continue

            keys = {field_name}
            alias = field.validation_alias
            if isinstance(alias, str):
                keys.add(alias)

            for key in keys:
                if cleaned.get(key) == "":
                    cleaned.pop(key, None)

        return cleaned

    @property
    def cors_origins_list(self) -> List[str]:
        """获取CORS允许的源列表"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = (".env",)
        case_sensitive = True
        extra = "ignore"


# 全局配置实例
settings = Settings()
