import re
import time

# Physical store names are "<STORE_NAMESPACE>-<store id>".
STORE_NAMESPACE = "bc-storage"
STORE_NAME_PREFIX = f"{STORE_NAMESPACE}-"
MAX_STORE_ID_LENGTH = 30

_PROTOCOL_RE = re.compile(r"^https?://")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_DASH_RUN_RE = re.compile(r"-+")


def normalize_url(url: str) -> str:
    """
    Strip a leading http:// or https:// so that URLs captured under one
    protocol still compare equal when reviewed under the other.
    """
    if not url:
        return ""
    return _PROTOCOL_RE.sub("", url)


def url_matches_root(url: str, root_url: str) -> bool:
    """
    True if *url* lives under *root_url*.

    Either the raw url starts with the raw root, or the protocol-normalized
    url starts with the normalized root. Plain substring containment is never
    accepted.
    """
    if not url or not root_url:
        return False
    if url.startswith(root_url):
        return True
    normalized_root = normalize_url(root_url)
    if not normalized_root:
        return False
    return normalize_url(url).startswith(normalized_root)


def sanitize_store_id(name: str) -> str:
    """
    Lower-case, collapse every run of non-alphanumerics into a single '-'
    and truncate to MAX_STORE_ID_LENGTH.
    """
    value = _NON_ALNUM_RE.sub("-", name.lower())
    value = _DASH_RUN_RE.sub("-", value)
    return value[:MAX_STORE_ID_LENGTH]


def generate_store_id() -> str:
    """Last six digits of the current millisecond timestamp."""
    stamp = str(int(time.time() * 1000))
    return stamp[-6:]


def generate_package_id() -> str:
    return f"pkg-{int(time.time() * 1000)}"


def store_name_for(store_id: str) -> str:
    return f"{STORE_NAME_PREFIX}{store_id}"


def store_id_from_name(store_name: str) -> str:
    if store_name.startswith(STORE_NAME_PREFIX):
        return store_name[len(STORE_NAME_PREFIX):]
    return store_name


def is_store_name(name: str) -> bool:
    return name.startswith(STORE_NAME_PREFIX)
