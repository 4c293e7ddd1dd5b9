from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    appwrite_endpoint: str = os.getenv("APPWRITE_ENDPOINT", "")
    appwrite_project_id: str = os.getenv("APPWRITE_PROJECT_ID", "")
    appwrite_api_key: str = os.getenv("APPWRITE_API_KEY") or os.getenv("APPWRITE_FUNCTION_API_KEY", "")
    appwrite_database_id: str = os.getenv("APPWRITE_DATABASE_ID", "")

    appwrite_results_collection_id: str = os.getenv("APPWRITE_RESULTS_COLLECTION_ID", "results")
    appwrite_challenges_collection_id: str = os.getenv("APPWRITE_CHALLENGES_COLLECTION_ID", "quizzes")
    appwrite_users_collection_id: str = os.getenv("APPWRITE_USERS_COLLECTION_ID", "users")
    appwrite_page_size: int = _int_env("APPWRITE_PAGE_SIZE", 100)

    dashboard_categories: tuple[str, ...] = _split_csv(
        os.getenv("DASHBOARD_CATEGORIES", "WIFI,VoIP,CCTV,LAN,Operations")
    )


settings = Settings()
