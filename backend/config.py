import os

from dotenv import load_dotenv

load_dotenv()

# Origins allowed to call the export API (comma separated)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "TERRAINSTL_CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ).split(",")
    if origin.strip()
]

STL_MEDIA_TYPE = "model/stl"
STL_FILENAME = "terrain-export.stl"

LOG_LEVEL = os.environ.get("TERRAINSTL_LOG_LEVEL", "INFO").upper()
