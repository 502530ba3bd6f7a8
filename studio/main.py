"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studio import __version__
from studio.api.endpoints import router
from studio.utils.logging import setup_logging

setup_logging()

# Create FastAPI application
app = FastAPI(
    title="Studio Agent Service",
    description=(
        "Server side of an AI application builder: an agentic tool-calling loop that edits "
        "project files and streams its progress as newline-delimited JSON."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    tags_metadata=[
        {
            "name": "Chat",
            "description": (
                "Run a chat turn. The response is an application/x-ndjson stream of events "
                "ending with a done event."
            ),
        },
        {
            "name": "Projects",
            "description": "Project files and message history.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("studio.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
