# utils/multipart.py
from typing import Dict

from requests_toolbelt.multipart import decoder as mp

from services.errors import InvalidInput


def _disposition_param(disp: str, name: str):
    for token in disp.split(";"):
        token = token.strip()
        if token.startswith(f"{name}="):
            return token.split("=", 1)[1].strip().strip('"')
    return None


def parse_single_file(req) -> Dict:
    """
    Parse multipart/form-data from an Azure Functions HttpRequest.
    Returns {"filename": ..., "content_type": ..., "data": bytes} for the part
    named 'file', or the first part that carries a filename.
    """
    ctype = req.headers.get("content-type") or req.headers.get("Content-Type")
    if not ctype or "multipart/form-data" not in ctype:
        raise InvalidInput("multipart/form-data required")

    try:
        parts = mp.MultipartDecoder(req.get_body(), ctype).parts
    except (mp.ImproperBodyPartContentException, mp.NonMultipartContentTypeException) as e:
        raise InvalidInput(f"Malformed multipart body: {e}") from e
    if not parts:
        raise InvalidInput("No file uploaded")

    file_part = None
    for p in parts:
        disp = p.headers.get(b"Content-Disposition", b"").decode("utf-8", "ignore")
        if _disposition_param(disp, "name") == "file":
            file_part = p
            break
    if file_part is None:
        # fall back to first part that looks like a file
        for p in parts:
            disp = p.headers.get(b"Content-Disposition", b"").decode("utf-8", "ignore")
            if _disposition_param(disp, "filename"):
                file_part = p
                break
    if file_part is None:
        raise InvalidInput("No file uploaded")

    disp = file_part.headers.get(b"Content-Disposition", b"").decode("utf-8", "ignore")
    content_type = file_part.headers.get(b"Content-Type", b"application/octet-stream").decode("utf-8", "ignore")
    return {
        "filename": _disposition_param(disp, "filename"),
        "content_type": content_type,
        "data": file_part.content,
    }
