"""Development server runner."""
import uvicorn
from subrelay.core.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "subrelay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["subrelay"],
        log_level="debug" if settings.debug else "info",
    )
