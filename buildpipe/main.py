from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from contextlib import asynccontextmanager  # noqa: E402
from typing import Optional  # noqa: E402

from fastapi import FastAPI  # noqa: E402

from buildpipe.api.deps import build_store  # noqa: E402
from buildpipe.api.errors import setup_exception_handlers  # noqa: E402
from buildpipe.api.routes_diagnostics import router as diagnostics_router  # noqa: E402
from buildpipe.api.routes_health import router as health_router  # noqa: E402
from buildpipe.api.routes_jobs import router as jobs_router  # noqa: E402
from buildpipe.api.routes_projects import router as projects_router  # noqa: E402
from buildpipe.core.config import settings  # noqa: E402
from buildpipe.core.log_setup import configure_logging  # noqa: E402
from buildpipe.db.session import init_db  # noqa: E402
from buildpipe.domain.job_service import JobService  # noqa: E402
from buildpipe.domain.job_store import JobStore, SqlJobStore  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_file)
    if isinstance(app.state.job_service.store, SqlJobStore):
        await init_db()
    yield


def create_app(store: Optional[JobStore] = None) -> FastAPI:
    app = FastAPI(title="Buildpipe", version="0.1.0", lifespan=lifespan)
    app.state.job_service = JobService(store if store is not None else build_store())
    setup_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(diagnostics_router)
    app.include_router(projects_router)
    return app


app = create_app()
