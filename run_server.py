import os

import uvicorn

from config.settings import settings

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("api.server:app", host="0.0.0.0", port=port, reload=settings.is_development)
