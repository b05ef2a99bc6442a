from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from . import __version__
from .auth import router as auth_router
from .config import Settings
from .errors import install_error_handlers
from .logging_config import setup_logging
from .middlewares import AuthMiddleware
from .routers import files, health, serve
from .sftp_gateway import SftpGateway
from .tokens import TokenService


def create_app(settings: Optional[Settings] = None, gateway: Optional[SftpGateway] = None) -> FastAPI:
	settings = settings or Settings()

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		# Startup
		setup_logging(settings)
		yield

	app = FastAPI(title="SFTP File Explorer API", version=__version__, lifespan=lifespan)

	# Built once per process and shared by every request
	app.state.settings = settings
	app.state.tokens = TokenService(settings)
	app.state.gateway = gateway or SftpGateway(settings)

	install_error_handlers(app)

	# Added first so CORS wraps it and preflights/401s still carry CORS headers
	app.add_middleware(AuthMiddleware)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=settings.cors_allow_origins,
		allow_credentials="*" not in settings.cors_allow_origins,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.add_middleware(GZipMiddleware, minimum_size=1000)

	app.include_router(health.router, prefix="/api")
	app.include_router(auth_router, prefix="/api")
	app.include_router(files.router, prefix="/api")
	app.include_router(serve.router, prefix="/api")

	return app


app = create_app()


def run():
	uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port, log_config=None)


if __name__ == "__main__":
	run()
