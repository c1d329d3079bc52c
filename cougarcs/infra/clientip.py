import ipaddress

from starlette.datastructures import Headers
from starlette.types import Scope

UNKNOWN_CLIENT = "unknown"


def _first_forwarded_ip(raw: str) -> str | None:
	for item in raw.split(","):
		candidate = item.strip()
		if not candidate:
			continue
		try:
			ipaddress.ip_address(candidate)
		except ValueError:
			continue
		return candidate
	return None


def client_ip(scope: Scope, trust_proxy: bool = False) -> str:
	"""
	Identity used for rate limiting and logs. X-Forwarded-For is only read
	when trust_proxy is set.
	"""
	if trust_proxy:
		forwarded = Headers(scope=scope).get("x-forwarded-for", "")
		ip = _first_forwarded_ip(forwarded)
		if ip:
			return ip
	client = scope.get("client")
	if client and client[0]:
		return str(client[0])
	return UNKNOWN_CLIENT
