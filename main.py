"""Root entrypoint so `uvicorn main:app` works from the project directory."""
from repolens.main import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("repolens.main:app", host="0.0.0.0", port=8000, reload=True)
