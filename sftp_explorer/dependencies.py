from fastapi import Request

from .config import Settings
from .sftp_gateway import SftpGateway
from .tokens import TokenService


def get_settings(request: Request) -> Settings:
	return request.app.state.settings


def get_gateway(request: Request) -> SftpGateway:
	return request.app.state.gateway


def get_tokens(request: Request) -> TokenService:
	return request.app.state.tokens
