import posixpath
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
	port: int = 8080
	environment: str = "production"

	# Remote store
	sftp_host: str = ""
	sftp_port: int = 22
	sftp_username: str = ""
	sftp_password: str = ""
	sftp_base_path: str = "/"
	sftp_timeout: float = 15.0
	sftp_known_hosts: Optional[str] = None  # reject unknown host keys when set

	# Auth
	jwt_secret: str = "default-secret-change-this"
	password: str = "demo123"  # used only when password_hash is empty
	password_hash: str = ""  # bcrypt hash, preferred
	cors_allow_origins: List[str] = ["*"]
	public_base_url: Optional[str] = None

	search_default_limit: int = 50
	search_max_limit: int = 500

	log_file: str = "sftp_explorer.log"
	log_level: str = "INFO"

	class Config:
		env_file = ".env"
		env_file_encoding = "utf-8"

	@property
	def sftp_configured(self) -> bool:
		return bool(self.sftp_host and self.sftp_username and self.sftp_password)

	@property
	def base_path(self) -> str:
		"""Remote root with trailing slashes stripped ("/" stays "/")."""
		root = posixpath.normpath("/" + (self.sftp_base_path or "/").strip())
		# normpath keeps a leading "//"
		if root.startswith("//"):
			root = "/" + root.lstrip("/")
		return root

	@property
	def is_development(self) -> bool:
		return self.environment.lower() in ("dev", "development")
