import posixpath


DEFAULT_TYPE = "application/octet-stream"

MIME_TYPES = {
	".html": "text/html",
	".htm": "text/html",
	".css": "text/css",
	".js": "application/javascript",
	".mjs": "application/javascript",
	".json": "application/json",
	".xml": "application/xml",
	".txt": "text/plain",
	".md": "text/markdown",
	".csv": "text/csv",
	".pdf": "application/pdf",
	".png": "image/png",
	".jpg": "image/jpeg",
	".jpeg": "image/jpeg",
	".gif": "image/gif",
	".svg": "image/svg+xml",
	".webp": "image/webp",
	".ico": "image/x-icon",
	".mp3": "audio/mpeg",
	".wav": "audio/wav",
	".mp4": "video/mp4",
	".webm": "video/webm",
	".zip": "application/zip",
	".woff": "font/woff",
	".woff2": "font/woff2",
	".ttf": "font/ttf",
	".otf": "font/otf",
}

# Types that get "; charset=utf-8" on the wire
_TEXT_TYPES = {"application/javascript", "application/json", "application/xml", "image/svg+xml"}


def guess_type(path: str) -> str:
	ext = posixpath.splitext(path)[1].lower()
	return MIME_TYPES.get(ext, DEFAULT_TYPE)


def content_type_header(mime: str) -> str:
	if mime.startswith("text/") or mime in _TEXT_TYPES:
		return f"{mime}; charset=utf-8"
	return mime
