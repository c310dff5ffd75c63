import mimetypes


def _prefix(value: str) -> str:
    value = value.strip("/")
    return f"{value}/" if value else ""


def is_output_path(path: str, output_prefix: str) -> bool:
    """True when path already lives under the compressed-output prefix."""
    prefix = _prefix(output_prefix)
    return bool(prefix) and path.lstrip("/").startswith(prefix)


def is_source_path(path: str, source_prefix: str) -> bool:
    """True when path lives under the raw-upload prefix (any path if the prefix is empty)."""
    prefix = _prefix(source_prefix)
    return not prefix or path.startswith(prefix)


def is_video_path(path: str, extension: str = ".mp4") -> bool:
    """Case-insensitive extension filter for raw uploads."""
    ext = extension if extension.startswith(".") else f".{extension}"
    return path.lower().endswith(ext.lower()) and len(path) > len(ext)


def derived_output_path(source_path: str, source_prefix: str = "raw/", output_prefix: str = "compressed/") -> str:
    """
    Map a raw upload key to its compressed artifact key.

    raw/abc.mp4 -> compressed/abc.mp4, raw/p/Hero.MP4 -> compressed/p/Hero.MP4.
    Only keys under source_prefix are accepted, and the remainder is kept
    verbatim, so two different sources never share an output key.

    Raises:
        ValueError: source_path is outside source_prefix
    """
    rel = source_path
    src = _prefix(source_prefix)
    if src:
        if not rel.startswith(src):
            raise ValueError(f"{source_path!r} is not under source prefix {src!r}")
        rel = rel[len(src):]
    if not rel:
        raise ValueError(f"{source_path!r} has no object name")
    return f"{_prefix(output_prefix)}{rel}"


def guess_content_type(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or "application/octet-stream"
