# achievement_api/__main__.py
import uvicorn

from achievement_api.config import settings

if __name__ == "__main__":
    uvicorn.run("achievement_api.main:app", host="0.0.0.0", port=settings.PORT, reload=settings.DEBUG)
