"""Rewrite served HTML so relative asset references come back through /serve.

Matching is attribute-syntax based: only src/href attributes inside tags are
touched, and comments plus <script>/<style> bodies are copied verbatim.
"""

import html
import json
import re
from typing import Optional
from urllib.parse import quote, unquote

from .errors import InvalidPath
from .path_utils import join_logical, parent_of


ABSOLUTE_PREFIXES = (
	"http://", "https://", "//", "data:", "blob:", "#",
	"mailto:", "javascript:", "tel:", "about:",
)

_SKIP_RE = re.compile(r"""<!--.*?-->|(<(script|style)\b(?:[^>"']|"[^"]*"|'[^']*')*>)(.*?)(</\2\s*>)""", re.S | re.I)
_TAG_RE = re.compile(r"""<[a-zA-Z](?:[^<>"']|"[^"]*"|'[^']*')*>""")
_ATTR_RE = re.compile(r"""(\s(?:src|href)\s*=\s*)(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+))""", re.I)
_HEAD_RE = re.compile(r"<head\b[^>]*>", re.I)
_HTML_RE = re.compile(r"<html\b[^>]*>", re.I)

_BOOTSTRAP = """<script data-serve-bootstrap>(function () {
  var cfg = %s;
  function isAbsolute(u) { return /^([a-z][a-z0-9+.\\-]*:|\\/\\/|#)/i.test(u); }
  function route(u) {
    if (typeof u !== 'string' || !u || isAbsolute(u)) return u;
    if (u.indexOf(cfg.serve + '?') === 0) return u;
    var hash = '', i = u.indexOf('#');
    if (i >= 0) { hash = u.slice(i); u = u.slice(0, i); }
    var rel = u.split('?')[0];
    try { rel = decodeURIComponent(rel); } catch (e) {}
    var parts = (rel.charAt(0) === '/' ? '' : cfg.base).split('/').concat(rel.split('/'));
    var out = [];
    for (var k = 0; k < parts.length; k++) {
      var p = parts[k];
      if (!p || p === '.') continue;
      if (p === '..') { if (!out.length) return u + hash; out.pop(); } else { out.push(p); }
    }
    var routed = cfg.serve + '?path=' + encodeURIComponent('/' + out.join('/'));
    if (cfg.token) routed += '&token=' + encodeURIComponent(cfg.token);
    return routed + hash;
  }
  if (window.fetch) {
    var origFetch = window.fetch;
    window.fetch = function (input, init) {
      if (typeof input === 'string') input = route(input);
      else if (input && input.url && window.Request && input instanceof window.Request && !isAbsolute(input.url)) input = new window.Request(route(input.url), input);
      return origFetch.call(this, input, init);
    };
  }
  if (window.XMLHttpRequest) {
    var origOpen = window.XMLHttpRequest.prototype.open;
    window.XMLHttpRequest.prototype.open = function (method, url) {
      var args = Array.prototype.slice.call(arguments);
      args[1] = route(url);
      return origOpen.apply(this, args);
    };
  }
})();</script>"""


def is_absolute_reference(value: str) -> bool:
	return value.strip().lower().startswith(ABSOLUTE_PREFIXES)


def build_serve_url(serve_url: str, logical_path: str, token: Optional[str]) -> str:
	url = f"{serve_url}?path={quote(logical_path, safe='')}"
	if token:
		url += f"&token={quote(token, safe='')}"
	return url


def rewrite_reference(value: str, base_dir: str, serve_url: str, token: Optional[str]) -> Optional[str]:
	"""Return the proxied URL for a relative reference, or None to leave it alone."""
	ref = html.unescape(value).strip()
	if not ref or is_absolute_reference(ref) or ref.startswith(serve_url + "?"):
		return None
	fragment = ""
	if "#" in ref:
		ref, fragment = ref.split("#", 1)
		fragment = "#" + fragment
	ref = ref.split("?", 1)[0]
	if not ref:
		return None
	try:
		target = join_logical(base_dir, unquote(ref))
	except InvalidPath:
		return None
	return build_serve_url(serve_url, target, token) + fragment


def _rewrite_tags(text: str, base_dir: str, serve_url: str, token: Optional[str]) -> str:
	def attr(match: "re.Match") -> str:
		value = next(g for g in match.group(2, 3, 4) if g is not None)
		routed = rewrite_reference(value, base_dir, serve_url, token)
		if routed is None:
			return match.group(0)
		return f'{match.group(1)}"{routed.replace(chr(34), "&quot;")}"'

	return _TAG_RE.sub(lambda m: _ATTR_RE.sub(attr, m.group(0)), text)


def bootstrap_script(base_dir: str, serve_url: str, token: Optional[str]) -> str:
	cfg = json.dumps({"serve": serve_url, "base": base_dir, "token": token or ""})
	return _BOOTSTRAP % cfg.replace("</", "<\\/")


def inject_bootstrap(document: str, script: str) -> str:
	for pattern in (_HEAD_RE, _HTML_RE):
		match = pattern.search(document)
		if match:
			return document[:match.end()] + script + document[match.end():]
	return script + document


def rewrite_html(document: str, request_path: str, serve_url: str, token: Optional[str]) -> str:
	"""Route relative src/href references of `document` through `serve_url`.

	`request_path` is the logical path the document was served from; relative
	references resolve against its directory.
	"""
	base_dir = parent_of(request_path)
	out = []
	pos = 0
	for match in _SKIP_RE.finditer(document):
		out.append(_rewrite_tags(document[pos:match.start()], base_dir, serve_url, token))
		if match.group(1):
			# keep the element body, but the opening tag may carry src=
			out.append(_rewrite_tags(match.group(1), base_dir, serve_url, token))
			out.append(match.group(3))
			out.append(match.group(4))
		else:
			out.append(match.group(0))
		pos = match.end()
	out.append(_rewrite_tags(document[pos:], base_dir, serve_url, token))
	return inject_bootstrap("".join(out), bootstrap_script(base_dir, serve_url, token))
