"""Create availability tables in the configured database."""

import sys, pathlib
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "backend"))

from app.database import engine
from app.models.generated import Base


def main():
    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        pathlib.Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=engine)
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
