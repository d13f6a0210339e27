import re

# Order matters: compound suffixes must be tried before their tails.
ALLOWED_EXTENSIONS = (".tar.xz", ".zip", ".rar", ".7z")
MAX_FILENAME_LENGTH = 255

_SAFE_NAME = re.compile(r"[A-Za-z0-9._-]+")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def matched_extension(filename: str) -> str | None:
    lowered = filename.lower()
    for ext in ALLOWED_EXTENSIONS:
        if lowered.endswith(ext):
            return ext
    return None


def validate_filename(filename: str) -> bool:
    """
    Allow-list gate for every untrusted filename.
    Checks run in a fixed order and stop at the first violation.
    """
    if not filename or len(filename) > MAX_FILENAME_LENGTH:
        return False
    if ".." in filename:
        return False
    if filename.startswith(("/", "\\")):
        return False
    if "/" in filename or "\\" in filename:
        return False
    if matched_extension(filename) is None:
        return False
    if not _SAFE_NAME.fullmatch(filename):
        return False
    return True


def strip_extension(filename: str) -> str:
    ext = matched_extension(filename)
    if ext is None:
        return filename
    return filename[: -len(ext)]


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", filename)
