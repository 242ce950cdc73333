import logging

import azure.functions as func

from services import image_set_service as iss
from services.errors import (
    CorruptImageSet,
    EntityBusy,
    ImageSetError,
    InvalidInput,
    NotFound,
    StoreIOError,
    StoreUnavailable,
)
from services.key_scheme import KeyScheme, sanitize_entity_id
from utils.cors import cors_response, json_response
from utils.multipart import parse_single_file

logger = logging.getLogger(__name__)
bp = func.Blueprint()

_STATUS = (
    (InvalidInput, 400),
    (NotFound, 404),
    (CorruptImageSet, 409),
    (EntityBusy, 409),
    (StoreUnavailable, 503),
    (StoreIOError, 502),  # PartialRenumber included
)


def error_response(e: ImageSetError) -> func.HttpResponse:
    status = next((code for cls, code in _STATUS if isinstance(e, cls)), 500)
    if status >= 500:
        logger.error("image operation failed: %s", e)
    return json_response({"success": False, "error": str(e)}, status)


def _image_list(scheme: KeyScheme, image_set) -> list:
    return [
        {
            "name": img.key,
            "url": scheme.public_url(image_set.entity_id, img.sequence, img.extension),
            "number": img.sequence,
        }
        for img in image_set
    ]


def _truthy(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes")


# ───────────── handlers ────────────────────────────────────────────────────────
def _get(req: func.HttpRequest, vin: str) -> func.HttpResponse:
    single = _truthy(req.params.get("single"))
    items = iss.list_entries(vin, single=single)
    if single and not items:
        return json_response({"success": False, "error": "Not found"}, 404)
    return json_response({"success": True, "images": items})


def _post(req: func.HttpRequest, vin: str) -> func.HttpResponse:
    scheme = KeyScheme.from_env()
    service = iss.require_image_service(scheme)
    file = parse_single_file(req)
    img = service.upload(vin, file["data"], file["filename"], file["content_type"])
    return json_response(
        {
            "success": True,
            "image": {
                "name": img.key,
                "url": scheme.public_url(img.entity_id, img.sequence, img.extension),
                "number": img.sequence,
            },
        }
    )


def _delete(req: func.HttpRequest, vin: str) -> func.HttpResponse:
    scheme = KeyScheme.from_env()
    service = iss.require_image_service(scheme)
    raw = req.params.get("imageNumber")
    if not raw:
        raise InvalidInput("imageNumber query param required")
    result = service.delete_and_compact(vin, raw)
    return json_response({"success": True, "images": _image_list(scheme, result)})


def _patch(req: func.HttpRequest, vin: str) -> func.HttpResponse:
    scheme = KeyScheme.from_env()
    service = iss.require_image_service(scheme)
    try:
        body = req.get_json()
    except ValueError:
        raise InvalidInput("Invalid JSON body") from None
    if not isinstance(body, dict):
        raise InvalidInput("newOrder array required")
    prune = body.get("prune", False)
    if not isinstance(prune, bool):
        raise InvalidInput("prune must be true or false")
    result = service.reorder(vin, body.get("newOrder"), prune=prune)
    return json_response({"success": True, "images": _image_list(scheme, result)})


_HANDLERS = {"GET": _get, "POST": _post, "DELETE": _delete, "PATCH": _patch}


def handle_images(req: func.HttpRequest) -> func.HttpResponse:
    method = (req.method or "GET").upper()
    if method == "OPTIONS":
        return cors_response(status=204)
    handler = _HANDLERS.get(method)
    if handler is None:
        return json_response({"success": False, "error": "Method not allowed"}, 405)
    try:
        vin = sanitize_entity_id(req.route_params.get("vin"))
        return handler(req, vin)
    except ImageSetError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("images/%s %s failed", req.route_params.get("vin"), method)
        return json_response({"success": False, "error": str(e) or "Internal Server Error"}, 500)


def handle_repair(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response(status=204)
    try:
        vin = sanitize_entity_id(req.route_params.get("vin"))
        scheme = KeyScheme.from_env()
        result = iss.require_image_service(scheme).repair(vin)
        return json_response({"success": True, "images": _image_list(scheme, result)})
    except ImageSetError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("repair failed")
        return json_response({"success": False, "error": str(e) or "Internal Server Error"}, 500)


def handle_folder(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response(status=204)
    try:
        vin = sanitize_entity_id(req.route_params.get("vin"))
        info = iss.require_image_service().ensure_folder(vin)
        return json_response({"success": True, **info})
    except ImageSetError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("ensure folder failed")
        return json_response({"success": False, "error": str(e) or "Internal Server Error"}, 500)


# ───────────── function bindings ───────────────────────────────────────────────
@bp.function_name(name="Images")
@bp.route(route="images/{vin}", methods=["GET", "POST", "DELETE", "PATCH", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def images(req: func.HttpRequest) -> func.HttpResponse:
    return handle_images(req)


@bp.function_name(name="ImagesRepair")
@bp.route(route="images/{vin}/repair", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def images_repair(req: func.HttpRequest) -> func.HttpResponse:
    return handle_repair(req)


@bp.function_name(name="EnsureVinFolder")
@bp.route(route="images/{vin}/folder", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def ensure_vin_folder(req: func.HttpRequest) -> func.HttpResponse:
    return handle_folder(req)
