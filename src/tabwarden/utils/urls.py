from urllib.parse import urlparse

import urlcanon


def fix_url(url: str):
    """make the url more like how chrome would make it

    :param url: raw url.
    :return: fixed url
    :rtype: str
    """
    return urlcanon.google.canonicalize(url).__str__()


def origin_path(url: str):
    """`scheme://host[:port]/path` of `url`, without query or fragment

    :param url: already canonical url.
    :rtype: str
    """
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def storage_path(url: str) -> tuple[str, str]:
    """split `url` into the `(host, path)` pair used for on-disk layouts.

    the leading slash is dropped, an empty path becomes `__root__`
    and dot segments are removed so nothing escapes the output root.

    :param url: page or response url.
    :return: `(host, relative_path)`
    """
    parsed = urlparse(url)
    host = parsed.hostname or "__unknown__"
    segments = [s for s in parsed.path.split("/") if s and s not in (".", "..")]
    return host, "/".join(segments) or "__root__"
