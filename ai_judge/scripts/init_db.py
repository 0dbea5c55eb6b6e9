from ai_judge.config import Settings
from ai_judge.store import CaseStore


def init_db():
    settings = Settings.from_env()
    print(f"Creating tables in {settings.database_url} ...")
    CaseStore(settings.database_url).create_tables()
    print("Done.")


if __name__ == "__main__":
    init_db()
