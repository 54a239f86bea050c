import dotenv
import uvicorn

dotenv.load_dotenv()

from incubus.app import create_app  # noqa: E402
from incubus.core.config import get_settings  # noqa: E402

settings = get_settings()

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.INCUBUS_HOST,
        port=settings.INCUBUS_PORT,
        log_config=None,
    )
